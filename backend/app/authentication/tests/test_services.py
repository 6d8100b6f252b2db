import random
from datetime import timedelta
from unittest import mock

from django.test import TestCase, override_settings
from django.utils import timezone

from app.authentication import delivery
from app.authentication.delivery import DeliveryResult
from app.authentication.rate_limit import allow_issue
from app.authentication.services import (
    build_message,
    generate_code,
    issue_otp,
    parse_purpose,
    verify_otp,
)
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
from app.sms_verifications import store
from app.sms_verifications.models import OtpPurpose, OtpRecord
from app.users.models import User

PHONE = "254712345678"


class FixedRng:
    def __init__(self, *values):
        self.values = list(values)

    def randrange(self, stop):
        return self.values.pop(0)


class FailingGateway:
    def send(self, phone, message):
        return DeliveryResult(success=False, error="Insufficient balance")


class CodeGenerationTest(TestCase):
    def test_fixed_width(self):
        self.assertEqual(generate_code(FixedRng(42)), "000042")
        self.assertEqual(generate_code(FixedRng(999999)), "999999")

    def test_seedable(self):
        self.assertEqual(generate_code(random.Random(7)), generate_code(random.Random(7)))

    def test_message_embeds_code_and_purpose(self):
        msg = build_message("482913", OtpPurpose.RESET)
        self.assertIn("482913", msg)
        self.assertIn("password reset", msg)
        self.assertIn("10 minutes", msg)

    def test_parse_purpose(self):
        self.assertEqual(parse_purpose(None), "LOGIN")
        self.assertEqual(parse_purpose("signup"), "SIGNUP")
        with self.assertRaises(InvalidInput):
            parse_purpose("TRANSFER")


@override_settings(OTP_SMS_BACKEND="app.authentication.delivery.LocmemGateway")
class OtpFlowTestBase(TestCase):
    def setUp(self):
        delivery.outbox.clear()
        self.t0 = timezone.now()
        self.user = User.objects.create_user(
            PHONE, name="Amina", email="amina@example.com"
        )

    def issue(self, code=482913, purpose=OtpPurpose.LOGIN, at=None, **kwargs):
        return issue_otp(PHONE, purpose, now=at or self.t0, rng=FixedRng(code), **kwargs)


class IssueOtpTest(OtpFlowTestBase):
    def test_issue_persists_then_delivers(self):
        record = self.issue()

        self.assertEqual(record.code, "482913")
        self.assertEqual(record.attempts, 0)
        self.assertEqual(record.max_attempts, 3)
        self.assertFalse(record.is_used)
        self.assertEqual(record.expires_at, self.t0 + timedelta(minutes=10))
        self.assertEqual(len(delivery.outbox), 1)
        self.assertEqual(delivery.outbox[0]["phone"], PHONE)
        self.assertIn("482913", delivery.outbox[0]["message"])

    def test_unregistered_login_creates_nothing(self):
        with self.assertRaises(NotRegistered):
            issue_otp("254799999999", OtpPurpose.LOGIN, now=self.t0)
        self.assertFalse(OtpRecord.objects.exists())
        self.assertEqual(delivery.outbox, [])

    def test_signup_does_not_need_profile(self):
        record = issue_otp("254799999999", OtpPurpose.SIGNUP, now=self.t0)
        self.assertEqual(record.purpose, "SIGNUP")

    def test_second_send_within_cooldown_is_rate_limited(self):
        self.issue()
        with self.assertRaises(RateLimited) as ctx:
            self.issue(at=self.t0 + timedelta(seconds=20))
        self.assertEqual(ctx.exception.retry_after, 40)
        self.assertEqual(OtpRecord.objects.count(), 1)

    def test_send_after_cooldown_is_allowed(self):
        self.issue()
        self.issue(code=111111, at=self.t0 + timedelta(seconds=61))
        self.assertEqual(OtpRecord.objects.count(), 2)

    def test_cooldown_is_per_purpose(self):
        self.issue()
        self.issue(purpose=OtpPurpose.RESET, at=self.t0 + timedelta(seconds=5))
        self.assertEqual(OtpRecord.objects.count(), 2)

    def test_used_code_does_not_block_resend(self):
        self.issue()
        verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(seconds=5))
        self.issue(code=111111, at=self.t0 + timedelta(seconds=10))
        self.assertEqual(OtpRecord.objects.count(), 2)

    def test_delivery_failure_keeps_valid_record(self):
        with self.assertRaises(DeliveryFailed) as ctx:
            self.issue(gateway=FailingGateway())
        self.assertEqual(ctx.exception.message, "Insufficient balance")

        # 저장은 발송보다 먼저 -> 코드는 여전히 유효
        payload = verify_otp(
            PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(minutes=1)
        )
        self.assertEqual(payload["id"], self.user.id)

    def test_delivery_never_attempted_when_storage_fails(self):
        gateway = mock.Mock()
        with mock.patch(
            "app.authentication.services.store.create_record",
            side_effect=StorageFailure(),
        ):
            with self.assertRaises(StorageFailure):
                self.issue(gateway=gateway)
        gateway.send.assert_not_called()


class RateLimiterTest(OtpFlowTestBase):
    def test_allows_without_history(self):
        decision = allow_issue(PHONE, OtpPurpose.LOGIN, self.t0)
        self.assertTrue(decision.allowed)

    def test_denies_with_retry_hint(self):
        self.issue()
        decision = allow_issue(PHONE, OtpPurpose.LOGIN, self.t0 + timedelta(seconds=59, milliseconds=500))
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 1)


class VerifyOtpTest(OtpFlowTestBase):
    def test_correct_code_succeeds_once(self):
        self.issue()
        payload = verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(minutes=1))

        self.assertEqual(
            dict(payload),
            {
                "id": self.user.id,
                "email": "amina@example.com",
                "name": "Amina",
                "phone": PHONE,
                "role": "BUYER",
            },
        )
        record = OtpRecord.objects.get()
        self.assertTrue(record.is_used)
        self.assertEqual(record.used_at, self.t0 + timedelta(minutes=1))

        self.user.refresh_from_db()
        self.assertTrue(self.user.is_phone_verified)

        with self.assertRaises(NoPendingOtp):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(minutes=2))

    def test_no_pending_code(self):
        with self.assertRaises(NoPendingOtp):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0)

    def test_purpose_scopes_verification(self):
        self.issue()
        with self.assertRaises(NoPendingOtp):
            verify_otp(PHONE, OtpPurpose.RESET, "482913", now=self.t0)

    def test_three_wrong_codes_then_too_many_attempts(self):
        self.issue()
        for i in range(3):
            with self.assertRaises(InvalidCode):
                verify_otp(PHONE, OtpPurpose.LOGIN, "000000", now=self.t0 + timedelta(seconds=i + 1))

        record = OtpRecord.objects.get()
        self.assertEqual(record.attempts, 3)
        self.assertFalse(record.is_used)

        with self.assertRaises(TooManyAttempts):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(seconds=10))

        record.refresh_from_db()
        self.assertTrue(record.is_used)
        with self.assertRaises(NoPendingOtp):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(seconds=11))

    def test_wrong_then_right_within_budget(self):
        self.issue()
        with self.assertRaises(InvalidCode):
            verify_otp(PHONE, OtpPurpose.LOGIN, "000000", now=self.t0)
        payload = verify_otp(PHONE, OtpPurpose.LOGIN, " 482913 ", now=self.t0)
        self.assertEqual(payload["id"], self.user.id)

    def test_expired_even_with_correct_code(self):
        self.issue()
        with self.assertRaises(OtpExpired):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(minutes=11))

        record = OtpRecord.objects.get()
        self.assertTrue(record.is_used)
        self.assertEqual(record.used_at, self.t0 + timedelta(minutes=11))

    def test_expiry_is_checked_before_attempts(self):
        self.issue()
        OtpRecord.objects.update(attempts=3)
        with self.assertRaises(OtpExpired):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0 + timedelta(minutes=11))

    def test_newest_code_supersedes_older(self):
        self.issue(code=111111)
        self.issue(code=222222, at=self.t0 + timedelta(minutes=2))

        with self.assertRaises(InvalidCode):
            verify_otp(PHONE, OtpPurpose.LOGIN, "111111", now=self.t0 + timedelta(minutes=3))
        verify_otp(PHONE, OtpPurpose.LOGIN, "222222", now=self.t0 + timedelta(minutes=3))

    def test_profile_removed_after_send(self):
        self.issue()
        User.objects.filter(pk=self.user.pk).update(is_active=False)
        with self.assertRaises(IdentityNotFound):
            verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0)

    def test_signup_without_profile_verifies_without_user(self):
        other = "254799999999"
        issue_otp(other, OtpPurpose.SIGNUP, now=self.t0, rng=FixedRng(123456))
        self.assertIsNone(verify_otp(other, OtpPurpose.SIGNUP, "123456", now=self.t0))


class ConcurrentVerifyTest(OtpFlowTestBase):
    """다른 요청이 조회와 update 사이에 같은 행을 바꾸는 경우"""

    def lookup_with_racing_wrong_code(self):
        real_lookup = store.latest_active
        raced = []

        def lookup(*args, **kwargs):
            record = real_lookup(*args, **kwargs)
            if record is not None and not raced:
                raced.append(record.pk)
                # 틀린 코드 요청이 마지막 시도를 먼저 써 버림
                store.increment_attempts(OtpRecord.objects.get(pk=record.pk))
            return record

        return mock.patch("app.authentication.services.store.latest_active", side_effect=lookup)

    def test_correct_code_loses_to_last_wrong_attempt(self):
        self.issue()
        OtpRecord.objects.update(attempts=2)

        with self.lookup_with_racing_wrong_code():
            with self.assertRaises(TooManyAttempts):
                verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0)

        record = OtpRecord.objects.get()
        self.assertEqual(record.attempts, 3)
        self.assertTrue(record.is_used)

    def test_racing_wrong_codes_do_not_pass_max(self):
        self.issue()
        OtpRecord.objects.update(attempts=2)

        with self.lookup_with_racing_wrong_code():
            with self.assertRaises(TooManyAttempts):
                verify_otp(PHONE, OtpPurpose.LOGIN, "000000", now=self.t0)

        record = OtpRecord.objects.get()
        self.assertEqual(record.attempts, 3)

    def test_correct_code_after_racing_wrong_attempt_within_budget(self):
        self.issue()

        with self.lookup_with_racing_wrong_code():
            payload = verify_otp(PHONE, OtpPurpose.LOGIN, "482913", now=self.t0)

        self.assertEqual(payload["id"], self.user.id)
        record = OtpRecord.objects.get()
        self.assertEqual(record.attempts, 1)
        self.assertTrue(record.is_used)


@override_settings(OTP_MAX_ATTEMPTS=5, OTP_TTL_SECONDS=120)
class PolicySettingsTest(OtpFlowTestBase):
    def test_policy_comes_from_settings(self):
        record = self.issue()
        self.assertEqual(record.max_attempts, 5)
        self.assertEqual(record.expires_at, self.t0 + timedelta(minutes=2))
