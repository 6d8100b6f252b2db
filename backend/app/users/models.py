# app/users/models.py
from django.db import models
from django.contrib.auth.models import AbstractUser, BaseUserManager

from app.common.phone import normalize_phone


class UserManager(BaseUserManager):
    use_in_migrations = True

    def create_user(self, phone_number, password=None, **extra_fields):
        if not phone_number:
            raise ValueError("phone_number must be set")

        # 저장 시점에 정규화 -> 조회는 정규화된 값 하나로 충분
        phone_number = normalize_phone(phone_number)
        user = self.model(phone_number=phone_number, **extra_fields)

        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, phone_number, password, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("is_active", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(phone_number, password=password, **extra_fields)


class User(AbstractUser):
    # username 기반 로그인 제거 (phone_number로 로그인)
    username = None

    phone_number = models.CharField(max_length=20, unique=True)

    name = models.CharField(max_length=100, blank=True, default="")
    role = models.CharField(max_length=20, blank=True, default="")  # 비어 있으면 OTP_DEFAULT_ROLE
    is_phone_verified = models.BooleanField(default=False)

    USERNAME_FIELD = "phone_number"
    REQUIRED_FIELDS = []

    objects = UserManager()

    def __str__(self):
        return f"{self.id} {self.phone_number}"
