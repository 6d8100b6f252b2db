# app/common/redis_client.py
import logging
from contextlib import contextmanager

import redis
from django.conf import settings

from app.common.errors import RateLimited, StorageFailure

logger = logging.getLogger(__name__)

_redis = None


def get_redis():
    global _redis
    if _redis is None:
        _redis = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,  # bytes 말고 str로 받게
        )
    return _redis


def issue_lock_key(identifier: str, purpose: str) -> str:
    return f"otp:issue:{purpose}:{identifier}"


@contextmanager
def issue_lock(identifier: str, purpose: str):
    """
    (identifier, purpose) 단위 발급 락.
    OTP_ISSUE_LOCK_ENABLED 가 꺼져 있으면 아무것도 하지 않는다.
    """
    if not getattr(settings, "OTP_ISSUE_LOCK_ENABLED", False):
        yield
        return

    cooldown = int(getattr(settings, "OTP_RESEND_COOLDOWN_SECONDS", 60))
    try:
        lock = get_redis().lock(
            issue_lock_key(identifier, purpose),
            timeout=getattr(settings, "OTP_ISSUE_LOCK_TIMEOUT_SECONDS", 10),
            blocking_timeout=getattr(settings, "OTP_ISSUE_LOCK_WAIT_SECONDS", 2),
        )
        acquired = lock.acquire()
    except redis.RedisError:
        logger.exception("Issue lock unavailable for %s", purpose)
        raise StorageFailure()

    if not acquired:
        raise RateLimited(retry_after=cooldown)

    try:
        yield
    finally:
        try:
            lock.release()
        except redis.RedisError:
            # 만료된 락은 timeout 으로 자동 해제됨
            logger.warning("Issue lock release failed for %s", purpose)
