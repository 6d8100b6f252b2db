# app/sms_verifications/models.py
from django.db import models
from django.utils import timezone


class OtpPurpose(models.TextChoices):
    LOGIN = "LOGIN", "Login"
    SIGNUP = "SIGNUP", "Sign up"
    RESET = "RESET", "Password reset"


class OtpRecordQuerySet(models.QuerySet):
    def for_subject(self, phone_number: str, purpose: str):
        return self.filter(phone_number=phone_number, purpose=purpose)

    def active(self):
        # 만료 여부는 verify 단계에서 따로 검사
        return self.filter(is_used=False)

    def latest_first(self):
        return self.order_by("-created_at", "-id")


class OtpRecord(models.Model):
    phone_number = models.CharField(max_length=20)
    code = models.CharField(max_length=10)
    purpose = models.CharField(
        max_length=16, choices=OtpPurpose.choices, default=OtpPurpose.LOGIN
    )
    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    attempts = models.IntegerField(default=0)
    max_attempts = models.IntegerField(default=3)
    is_used = models.BooleanField(default=False)
    used_at = models.DateTimeField(null=True, blank=True)

    objects = OtpRecordQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(
                fields=["phone_number", "purpose", "-created_at"],
                name="otp_subject_created_idx",
            ),
            models.Index(fields=["expires_at"], name="otp_expires_at_idx"),
        ]

    def __str__(self):
        return f"{self.id} {self.purpose} {self.phone_number}"

    def is_expired(self, now) -> bool:
        return now > self.expires_at

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts
