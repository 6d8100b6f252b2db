# app/authentication/services.py
import hmac
import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from app.authentication.delivery import deliver
from app.authentication.rate_limit import allow_issue
from app.common.errors import (
    DeliveryFailed,
    IdentityNotFound,
    InvalidCode,
    InvalidInput,
    NoPendingOtp,
    NotRegistered,
    OtpExpired,
    RateLimited,
    StorageFailure,
    TooManyAttempts,
)
from app.common.phone import mask_phone
from app.common.redis_client import issue_lock
from app.sms_verifications import store
from app.sms_verifications.models import OtpPurpose
from app.users.identity import find_profile, is_registered
from app.users.serializers import VerifiedUserSerializer

logger = logging.getLogger(__name__)

_system_rng = secrets.SystemRandom()

# 동시 verify 로 조건부 update 가 밀렸을 때 다시 읽는 횟수
VERIFY_RETRIES = 5

PURPOSE_LABELS = {
    OtpPurpose.LOGIN: "login",
    OtpPurpose.SIGNUP: "sign-up",
    OtpPurpose.RESET: "password reset",
}


def otp_ttl_seconds() -> int:
    return int(getattr(settings, "OTP_TTL_SECONDS", 600))


def otp_max_attempts() -> int:
    return int(getattr(settings, "OTP_MAX_ATTEMPTS", 3))


def parse_purpose(value) -> str:
    purpose = str(value or OtpPurpose.LOGIN).strip().upper()
    if purpose not in OtpPurpose.values:
        raise InvalidInput("Invalid purpose")
    return purpose


def requires_registration(purpose: str) -> bool:
    registered = getattr(
        settings, "OTP_REGISTERED_PURPOSES", [OtpPurpose.LOGIN, OtpPurpose.RESET]
    )
    return purpose in registered


def generate_code(rng=None, length: int = None) -> str:
    """000000~999999 균등 분포. rng 는 테스트에서 random.Random(seed) 주입"""
    length = length or int(getattr(settings, "OTP_CODE_LENGTH", 6))
    rng = rng or _system_rng
    return f"{rng.randrange(10 ** length):0{length}d}"


def build_message(code: str, purpose: str) -> str:
    brand = getattr(settings, "OTP_SMS_BRAND", "SWIFTLINE")
    label = PURPOSE_LABELS.get(purpose, "verification")
    minutes = otp_ttl_seconds() // 60
    return (
        f"Your {brand} {label} verification code is: {code}. "
        f"Valid for {minutes} minutes. Do not share this code."
    )


def issue_otp(identifier: str, purpose: str = OtpPurpose.LOGIN, *, now=None, rng=None, gateway=None):
    now = now or timezone.now()

    # 0) 로그인/재설정은 가입된 번호만
    if requires_registration(purpose) and not is_registered(identifier):
        logger.info("Phone not registered: %s", mask_phone(identifier))
        raise NotRegistered()

    # 1) rate limit + OTP 저장
    with issue_lock(identifier, purpose):
        decision = allow_issue(identifier, purpose, now)
        if not decision.allowed:
            raise RateLimited(retry_after=decision.retry_after)

        code = generate_code(rng)
        record = store.create_record(
            phone_number=identifier,
            code=code,
            purpose=purpose,
            created_at=now,
            expires_at=now + timedelta(seconds=otp_ttl_seconds()),
            max_attempts=otp_max_attempts(),
        )

    # 2) SMS 발송. 실패해도 레코드는 남아 있음 (재요청 가능)
    result = deliver(identifier, build_message(code, purpose), gateway)
    if not result.success:
        logger.warning(
            "OTP %s stored but SMS failed for %s: %s",
            record.pk,
            mask_phone(identifier),
            result.error,
        )
        raise DeliveryFailed(result.error or None)

    logger.info("OTP sent to %s", mask_phone(identifier))
    return record


def _evaluate(record, submitted: str, now):
    """
    한 번의 read-check-write. 조건부 update 가 밀리면 (동시 요청) False 를 돌려준다.
    """
    if record is None:
        return NoPendingOtp()

    if record.is_expired(now):
        store.mark_used(record, now)
        return OtpExpired()

    if record.attempts_exhausted:
        store.mark_used(record, now)
        return TooManyAttempts()

    if not hmac.compare_digest(record.code.encode(), submitted.encode()):
        # 이번 증가로 max 에 닿아도 소진 처리는 다음 호출에서
        if not store.increment_attempts(record):
            return False
        return InvalidCode()

    if not store.mark_used(record, now, expected_attempts=record.attempts):
        return False
    return None


@transaction.atomic
def _consume_attempt(identifier: str, purpose: str, submitted: str, now):
    """
    최신 미사용 레코드를 잠그고 상태 전이를 적용한다.
    실패 시 raise 하지 않고 에러 객체를 돌려준다 (raise 하면 used 처리가 롤백됨).
    다른 요청이 먼저 행을 바꿨으면 다시 읽고 처음부터 판정 -> 순서대로 처리한 것과 같은 결과.
    """
    for _ in range(VERIFY_RETRIES):
        record = store.latest_active(identifier, purpose, lock=True)
        outcome = _evaluate(record, submitted, now)
        if outcome is not False:
            return outcome
    return NoPendingOtp()


def verify_otp(identifier: str, purpose: str, submitted_code, *, now=None):
    """
    성공하면 {id, email, name, phone, role}, 가입이 필요 없는 purpose 에서
    프로필이 없으면 None.
    """
    now = now or timezone.now()
    submitted = str(submitted_code or "").strip()

    try:
        failure = _consume_attempt(identifier, purpose, submitted, now)
    except DatabaseError:
        logger.exception("OTP verify storage error for %s", mask_phone(identifier))
        raise StorageFailure("Failed to verify OTP")

    if failure is not None:
        logger.info("OTP verify failed for %s: %s", mask_phone(identifier), failure.code)
        raise failure

    profile = find_profile(identifier)
    if profile is None:
        if requires_registration(purpose):
            raise IdentityNotFound()
        return None

    if not profile.is_phone_verified:
        profile.is_phone_verified = True
        profile.save(update_fields=["is_phone_verified"])

    logger.info("OTP verified for user: %s", profile.id)
    return VerifiedUserSerializer(profile).data
