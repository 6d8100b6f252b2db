# app/users/serializers.py
from django.conf import settings
from rest_framework import serializers

from .models import User


class VerifiedUserSerializer(serializers.ModelSerializer):
    phone = serializers.CharField(source="phone_number", read_only=True)
    role = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "name", "phone", "role"]

    def get_role(self, obj: User):
        return obj.role or getattr(settings, "OTP_DEFAULT_ROLE", "BUYER")
