# app/users/identity.py
import logging

from django.db import DatabaseError

from app.common.phone import mask_phone, phone_variants
from app.users.models import User

logger = logging.getLogger(__name__)


def find_profile(identifier: str):
    """
    정규화 이전에 저장된 번호(0712.., +254.., 712..)도 찾을 수 있게 variant 전부로 조회.
    조회 에러 = 없음 (로그인 거절 쪽으로)
    """
    try:
        return (
            User.objects.filter(
                phone_number__in=phone_variants(identifier), is_active=True
            )
            .order_by("id")
            .first()
        )
    except DatabaseError:
        logger.exception("Profile lookup error for %s", mask_phone(identifier))
        return None


def is_registered(identifier: str) -> bool:
    return find_profile(identifier) is not None
