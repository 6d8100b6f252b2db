from datetime import timedelta
from unittest import mock

from django.contrib import admin
from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from app.common.errors import StorageFailure
from app.sms_verifications import store
from app.sms_verifications.models import OtpPurpose, OtpRecord

PHONE = "254712345678"


def make_record(created_at, **kwargs):
    defaults = dict(
        phone_number=PHONE,
        code="123456",
        purpose=OtpPurpose.LOGIN,
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=10),
        max_attempts=3,
    )
    defaults.update(kwargs)
    return store.create_record(**defaults)


class OtpStoreTest(TestCase):
    def setUp(self):
        self.now = timezone.now()

    def test_create_record_starts_active(self):
        record = make_record(self.now)
        self.assertEqual(record.attempts, 0)
        self.assertFalse(record.is_used)
        self.assertIsNone(record.used_at)

    def test_create_record_storage_error(self):
        with mock.patch.object(
            OtpRecord.objects, "create", side_effect=DatabaseError("down")
        ), self.assertLogs("app.sms_verifications.store", level="ERROR"):
            with self.assertRaises(StorageFailure):
                make_record(self.now)

    def test_latest_active_prefers_newest(self):
        make_record(self.now - timedelta(minutes=5), code="111111")
        newest = make_record(self.now, code="222222")
        self.assertEqual(store.latest_active(PHONE, OtpPurpose.LOGIN).pk, newest.pk)

    def test_latest_active_skips_used_and_other_purpose(self):
        older = make_record(self.now - timedelta(minutes=2))
        newer = make_record(self.now)
        make_record(self.now + timedelta(seconds=1), purpose=OtpPurpose.RESET)
        store.mark_used(newer, self.now)

        self.assertEqual(store.latest_active(PHONE, OtpPurpose.LOGIN).pk, older.pk)
        self.assertIsNone(store.latest_active(PHONE, OtpPurpose.SIGNUP))

    def test_latest_active_lookup_error_is_absence(self):
        make_record(self.now)
        with mock.patch(
            "app.sms_verifications.models.OtpRecordQuerySet.first",
            side_effect=DatabaseError("down"),
        ), self.assertLogs("app.sms_verifications.store", level="ERROR"):
            self.assertIsNone(store.latest_active(PHONE, OtpPurpose.LOGIN))

    def test_latest_active_since_window(self):
        record = make_record(self.now - timedelta(seconds=30))
        found = store.latest_active_since(
            PHONE, OtpPurpose.LOGIN, self.now - timedelta(seconds=60)
        )
        self.assertEqual(found.pk, record.pk)
        self.assertIsNone(
            store.latest_active_since(
                PHONE, OtpPurpose.LOGIN, self.now - timedelta(seconds=10)
            )
        )

    def test_latest_active_since_error_does_not_admit(self):
        with mock.patch(
            "app.sms_verifications.models.OtpRecordQuerySet.first",
            side_effect=DatabaseError("down"),
        ), self.assertLogs("app.sms_verifications.store", level="ERROR"):
            with self.assertRaises(StorageFailure):
                store.latest_active_since(PHONE, OtpPurpose.LOGIN, self.now)

    def test_mark_used_only_once(self):
        record = make_record(self.now)
        stale = OtpRecord.objects.get(pk=record.pk)

        self.assertTrue(store.mark_used(record, self.now))
        # 같은 행을 먼저 읽어 둔 다른 요청
        self.assertFalse(store.mark_used(stale, self.now + timedelta(seconds=1)))

        record.refresh_from_db()
        self.assertTrue(record.is_used)
        self.assertEqual(record.used_at, self.now)

    def test_increment_attempts_does_not_lose_updates(self):
        record = make_record(self.now)
        stale = OtpRecord.objects.get(pk=record.pk)

        self.assertTrue(store.increment_attempts(record))
        self.assertTrue(store.increment_attempts(stale))

        record.refresh_from_db()
        self.assertEqual(record.attempts, 2)
        self.assertEqual(stale.attempts, 2)

    def test_increment_attempts_never_passes_max(self):
        record = make_record(self.now)
        OtpRecord.objects.filter(pk=record.pk).update(attempts=2)
        first = OtpRecord.objects.get(pk=record.pk)
        second = OtpRecord.objects.get(pk=record.pk)

        self.assertTrue(store.increment_attempts(first))
        self.assertFalse(store.increment_attempts(second))

        record.refresh_from_db()
        self.assertEqual(record.attempts, 3)
        self.assertLessEqual(record.attempts, record.max_attempts)

    def test_mark_used_rejects_changed_attempts(self):
        record = make_record(self.now)
        OtpRecord.objects.filter(pk=record.pk).update(attempts=2)
        stale = OtpRecord.objects.get(pk=record.pk)
        store.increment_attempts(OtpRecord.objects.get(pk=record.pk))

        self.assertFalse(store.mark_used(stale, self.now, expected_attempts=stale.attempts))
        record.refresh_from_db()
        self.assertFalse(record.is_used)

        self.assertTrue(store.mark_used(record, self.now, expected_attempts=3))

    def test_increment_attempts_ignores_used_record(self):
        record = make_record(self.now)
        store.mark_used(record, self.now)
        self.assertFalse(store.increment_attempts(record))
        record.refresh_from_db()
        self.assertEqual(record.attempts, 0)


class OtpRecordModelTest(TestCase):
    def test_expiry_and_exhaustion(self):
        now = timezone.now()
        record = make_record(now)
        self.assertFalse(record.is_expired(now + timedelta(minutes=10)))
        self.assertTrue(record.is_expired(now + timedelta(minutes=10, seconds=1)))

        record.attempts = 3
        self.assertTrue(record.attempts_exhausted)

    def test_registered_in_admin(self):
        self.assertTrue(admin.site.is_registered(OtpRecord))
