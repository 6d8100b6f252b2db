from unittest import mock

import redis
from django.test import SimpleTestCase, override_settings
from rest_framework.test import APIRequestFactory

from app.common.errors import InvalidInput, RateLimited, StorageFailure
from app.common.exceptions import custom_exception_handler
from app.common.phone import mask_phone, normalize_phone, phone_variants
from app.common.redis_client import issue_lock, issue_lock_key


class NormalizePhoneTest(SimpleTestCase):
    def test_equivalent_forms_share_one_identifier(self):
        forms = [
            "0712345678",
            "712345678",
            "254712345678",
            "+254712345678",
            "+254 712-345-678",
            "(0712) 345 678",
            "00254712345678",
            "+254 0712 345 678",
        ]
        for raw in forms:
            with self.subTest(raw=raw):
                self.assertEqual(normalize_phone(raw), "254712345678")

    def test_idempotent(self):
        for raw in ["0712345678", "+254110222333", "733555999"]:
            once = normalize_phone(raw)
            self.assertEqual(normalize_phone(once), once)

    def test_rejects_input_without_digits(self):
        for raw in ["", "   ", "abc", None, "+"]:
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidInput):
                    normalize_phone(raw)

    def test_rejects_too_short_and_too_long(self):
        with self.assertRaises(InvalidInput):
            normalize_phone("12")
        with self.assertRaises(InvalidInput):
            normalize_phone("0712345678901234")

    @override_settings(OTP_DEFAULT_COUNTRY_CODE="82")
    def test_country_code_comes_from_settings(self):
        self.assertEqual(normalize_phone("010-1234-5678"), "821012345678")

    def test_variants_cover_stored_formats(self):
        self.assertEqual(
            phone_variants("254712345678"),
            ["254712345678", "+254712345678", "0712345678", "712345678"],
        )

    def test_mask_phone(self):
        self.assertEqual(mask_phone("254712345678"), "*********678")
        self.assertEqual(mask_phone(""), "")


class IssueLockTest(SimpleTestCase):
    def test_disabled_lock_is_noop(self):
        with mock.patch("app.common.redis_client.get_redis") as get_redis:
            with issue_lock("254712345678", "LOGIN"):
                pass
        get_redis.assert_not_called()

    @override_settings(OTP_ISSUE_LOCK_ENABLED=True)
    def test_acquired_lock_is_released(self):
        with mock.patch("app.common.redis_client.get_redis") as get_redis:
            lock = get_redis.return_value.lock.return_value
            lock.acquire.return_value = True
            with issue_lock("254712345678", "LOGIN"):
                pass

        get_redis.return_value.lock.assert_called_once()
        self.assertEqual(
            get_redis.return_value.lock.call_args[0][0],
            issue_lock_key("254712345678", "LOGIN"),
        )
        lock.release.assert_called_once()

    @override_settings(OTP_ISSUE_LOCK_ENABLED=True, OTP_RESEND_COOLDOWN_SECONDS=60)
    def test_held_lock_means_rate_limited(self):
        with mock.patch("app.common.redis_client.get_redis") as get_redis:
            get_redis.return_value.lock.return_value.acquire.return_value = False
            with self.assertRaises(RateLimited) as ctx:
                with issue_lock("254712345678", "LOGIN"):
                    self.fail("body must not run")
        self.assertEqual(ctx.exception.retry_after, 60)

    @override_settings(OTP_ISSUE_LOCK_ENABLED=True)
    def test_redis_down_is_storage_failure(self):
        with mock.patch("app.common.redis_client.get_redis") as get_redis:
            get_redis.return_value.lock.side_effect = redis.ConnectionError("down")
            with self.assertRaises(StorageFailure):
                with issue_lock("254712345678", "LOGIN"):
                    pass


class ExceptionHandlerTest(SimpleTestCase):
    def test_unknown_exception_becomes_500_envelope(self):
        request = APIRequestFactory().post("/api/auth/otp")
        with self.assertLogs("app.common.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("boom"), {"request": request})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["success"], False)
        self.assertEqual(response.data["code"], "SERVER_ERROR")
