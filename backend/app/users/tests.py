from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings

from app.users.identity import find_profile, is_registered
from app.users.models import User
from app.users.serializers import VerifiedUserSerializer


class UserManagerTest(TestCase):
    def test_create_user_stores_canonical_phone(self):
        user = User.objects.create_user("+254 712 345 678", name="Amina")
        self.assertEqual(user.phone_number, "254712345678")
        self.assertFalse(user.has_usable_password())

    def test_create_user_requires_phone(self):
        with self.assertRaises(ValueError):
            User.objects.create_user("")


class IdentityLookupTest(TestCase):
    def test_finds_canonical_profile(self):
        user = User.objects.create_user("0712345678", name="Amina")
        self.assertEqual(find_profile("254712345678"), user)
        self.assertTrue(is_registered("254712345678"))

    def test_finds_legacy_formats(self):
        # 정규화 도입 전 저장된 행들 (manager 우회)
        for stored in ["0722000111", "+254733555999", "110222333"]:
            User.objects.create(phone_number=stored, name=stored)

        self.assertEqual(find_profile("254722000111").phone_number, "0722000111")
        self.assertEqual(find_profile("254733555999").phone_number, "+254733555999")
        self.assertEqual(find_profile("254110222333").phone_number, "110222333")

    def test_inactive_profile_is_not_found(self):
        User.objects.create_user("0712345678", is_active=False)
        self.assertIsNone(find_profile("254712345678"))

    def test_lookup_error_means_not_registered(self):
        with mock.patch.object(
            User.objects, "filter", side_effect=DatabaseError("down")
        ), self.assertLogs("app.users.identity", level="ERROR"):
            self.assertFalse(is_registered("254712345678"))


class VerifiedUserSerializerTest(TestCase):
    def test_payload_shape(self):
        user = User.objects.create_user(
            "0712345678", name="Brian", email="brian@example.com", role="SELLER"
        )
        self.assertEqual(
            dict(VerifiedUserSerializer(user).data),
            {
                "id": user.id,
                "email": "brian@example.com",
                "name": "Brian",
                "phone": "254712345678",
                "role": "SELLER",
            },
        )

    @override_settings(OTP_DEFAULT_ROLE="BUYER")
    def test_missing_role_falls_back_to_default(self):
        user = User.objects.create_user("0712345678")
        self.assertEqual(VerifiedUserSerializer(user).data["role"], "BUYER")


class SeedProfilesCommandTest(TestCase):
    def test_seeds_once(self):
        out = StringIO()
        call_command("seed_profiles", stdout=out)
        count = User.objects.count()
        self.assertGreater(count, 0)
        self.assertTrue(User.objects.filter(phone_number="254722000111").exists())

        call_command("seed_profiles", stdout=StringIO())
        self.assertEqual(User.objects.count(), count)
        self.assertIn("Seeded", out.getvalue())
