# app/common/phone.py
import re

from django.conf import settings

from app.common.errors import InvalidInput

E164_MAX_DIGITS = 15
MIN_SUBSCRIBER_DIGITS = 6


def _country_code() -> str:
    return str(getattr(settings, "OTP_DEFAULT_COUNTRY_CODE", "254"))


def normalize_phone(raw: str) -> str:
    """
    0712345678 / 712345678 / +254 712-345-678 / 254712345678 -> 254712345678

    항상 국가코드로 시작하는 숫자열을 돌려주므로 두 번 적용해도 결과가 같다.
    """
    cc = _country_code()
    digits = re.sub(r"[^0-9]", "", str(raw or ""))
    if not digits:
        raise InvalidInput("Invalid phone number")

    if digits.startswith("00"):
        digits = digits[2:]

    if digits.startswith(cc):
        # +254 0712... 처럼 국가코드 뒤에 붙은 trunk 0 제거
        identifier = cc + digits[len(cc):].lstrip("0")
    elif digits.startswith("0"):
        identifier = cc + digits[1:]
    else:
        identifier = cc + digits

    if len(identifier) > E164_MAX_DIGITS or len(identifier) < len(cc) + MIN_SUBSCRIBER_DIGITS:
        raise InvalidInput("Invalid phone number")
    return identifier


def phone_variants(identifier: str) -> list:
    """프로필 테이블에 저장돼 있을 수 있는 표기들 (254.., +254.., 07.., 7..)"""
    cc = _country_code()
    national = identifier[len(cc):] if identifier.startswith(cc) else identifier
    return [identifier, f"+{identifier}", f"0{national}", national]


def mask_phone(phone: str, visible_digits: int = 3) -> str:
    if not phone:
        return ""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]
