# app/sms_verifications/store.py
import logging

from django.db import DatabaseError, transaction
from django.db.models import F

from app.common.errors import StorageFailure
from app.common.phone import mask_phone
from app.sms_verifications.models import OtpRecord

logger = logging.getLogger(__name__)


def create_record(*, phone_number, code, purpose, created_at, expires_at, max_attempts):
    try:
        return OtpRecord.objects.create(
            phone_number=phone_number,
            code=code,
            purpose=purpose,
            created_at=created_at,
            expires_at=expires_at,
            attempts=0,
            max_attempts=max_attempts,
            is_used=False,
        )
    except DatabaseError:
        logger.exception("Error inserting OTP for %s", mask_phone(phone_number))
        raise StorageFailure()


def latest_active(phone_number: str, purpose: str, *, lock: bool = False):
    """
    (phone_number, purpose) 의 가장 최근 미사용 레코드.
    조회 에러는 로그만 남기고 "없음"으로 처리 -> verify 쪽에서 거절된다.
    lock=True 는 바깥 transaction.atomic() 안에서만 의미가 있다.
    """
    qs = OtpRecord.objects.all()
    if lock:
        qs = qs.select_for_update()
    try:
        # savepoint: 실패해도 바깥 트랜잭션은 살아 있게
        with transaction.atomic():
            return qs.for_subject(phone_number, purpose).active().latest_first().first()
    except DatabaseError:
        logger.exception("Error fetching OTP for %s", mask_phone(phone_number))
        return None


def latest_active_since(phone_number: str, purpose: str, since):
    """rate limit 용. 조회가 깨지면 StorageFailure (통과시키지 않음)"""
    try:
        return (
            OtpRecord.objects.for_subject(phone_number, purpose)
            .active()
            .filter(created_at__gt=since)
            .latest_first()
            .first()
        )
    except DatabaseError:
        logger.exception("Rate limit lookup failed for %s", mask_phone(phone_number))
        raise StorageFailure()


def mark_used(record: OtpRecord, now, *, expected_attempts: int = None) -> bool:
    """
    is_used=False 일 때만 소비. 다른 요청이 먼저 소비했으면 False.
    expected_attempts 를 주면 읽은 시점 이후 attempts 가 바뀌었을 때도 False.
    """
    qs = OtpRecord.objects.filter(pk=record.pk, is_used=False)
    if expected_attempts is not None:
        qs = qs.filter(attempts=expected_attempts)
    updated = qs.update(is_used=True, used_at=now)
    if updated:
        record.is_used = True
        record.used_at = now
    return bool(updated)


def increment_attempts(record: OtpRecord) -> bool:
    # attempts <= max_attempts 유지: 이미 소진된 행은 올리지 않는다
    updated = OtpRecord.objects.filter(
        pk=record.pk, is_used=False, attempts__lt=F("max_attempts")
    ).update(attempts=F("attempts") + 1)
    if updated:
        record.refresh_from_db(fields=["attempts"])
    return bool(updated)
