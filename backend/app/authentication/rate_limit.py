# app/authentication/rate_limit.py
import math
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings

from app.sms_verifications.store import latest_active_since


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0


def resend_cooldown_seconds() -> int:
    return int(getattr(settings, "OTP_RESEND_COOLDOWN_SECONDS", 60))


def allow_issue(phone_number: str, purpose: str, now) -> RateLimitDecision:
    """
    쿨다운 안에 만들어진 미사용 코드가 있으면 거절. 읽기만 한다.
    동시 요청 두 개가 경계에서 둘 다 통과할 수 있음 (OTP_ISSUE_LOCK_ENABLED 참고).
    """
    cooldown = resend_cooldown_seconds()
    recent = latest_active_since(phone_number, purpose, now - timedelta(seconds=cooldown))
    if recent is None:
        return RateLimitDecision(allowed=True)

    elapsed = (now - recent.created_at).total_seconds()
    retry_after = max(1, math.ceil(cooldown - elapsed))
    return RateLimitDecision(allowed=False, retry_after=retry_after)
