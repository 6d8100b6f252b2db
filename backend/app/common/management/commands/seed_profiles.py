from django.core.management.base import BaseCommand
from django.db import transaction
from django.contrib.auth import get_user_model

from app.common.phone import normalize_phone


PROFILES = [
    dict(phone_number="0712345678", name="Amina Otieno", email="amina@example.com", role="BUYER"),
    dict(phone_number="+254 722 000 111", name="Brian Kamau", email="brian@example.com", role="SELLER"),
    dict(phone_number="733555999", name="Cynthia Wanjiru", email="cynthia@example.com", role=""),
    dict(phone_number="254110222333", name="Admin", email="admin@example.com", role="ADMIN"),
]


class Command(BaseCommand):
    help = "Seed demo profiles for OTP login"

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()
        created = 0

        for data in PROFILES:
            data = dict(data)
            phone = normalize_phone(data.pop("phone_number"))
            if User.objects.filter(phone_number=phone).exists():
                continue

            User.objects.create_user(phone, **data)
            created += 1
            self.stdout.write(f"  + {phone} {data['name']}")

        self.stdout.write(self.style.SUCCESS(f"Seeded {created} profile(s)"))
