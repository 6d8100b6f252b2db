# app/authentication/delivery.py
"""
SMS 발송 backend 모음. OTP_SMS_BACKEND 설정(dotted path)으로 고른다.

모든 backend 는 send(phone, message) -> DeliveryResult 형태이고
예외를 밖으로 던지지 않는다. 발송 시간은 OTP_SMS_TIMEOUT_SECONDS 로 제한.
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from app.common.phone import mask_phone

logger = logging.getLogger(__name__)

# LocmemGateway 가 보낸 메시지 (테스트용)
outbox = []


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error: str = ""


def _timeout() -> float:
    return float(getattr(settings, "OTP_SMS_TIMEOUT_SECONDS", 5))


class ConsoleGateway:
    """API 키 없는 개발 환경: 로그만 찍고 성공 처리"""

    def send(self, phone: str, message: str) -> DeliveryResult:
        logger.info("[DEV MODE] Would send SMS to %s: %s", phone, message)
        return DeliveryResult(success=True)


class LocmemGateway:
    def send(self, phone: str, message: str) -> DeliveryResult:
        outbox.append({"phone": phone, "message": message})
        return DeliveryResult(success=True)


class BulkSmsGateway:
    SUCCESS_STATUS = "1000"

    def __init__(self, api_key=None, sender_id=None, url=None, timeout=None):
        self.api_key = api_key or getattr(settings, "BULK_SMS_API_KEY", "")
        self.sender_id = sender_id or getattr(settings, "BULK_SMS_SENDER_ID", "")
        self.url = url or getattr(settings, "BULK_SMS_URL", "")
        self.timeout = timeout or _timeout()

    def send(self, phone: str, message: str) -> DeliveryResult:
        if not self.api_key or not self.url:
            return DeliveryResult(success=False, error="SMS gateway not configured")

        logger.info("Sending SMS to %s...", mask_phone(phone))
        try:
            resp = requests.post(
                self.url,
                json={
                    "api_key": self.api_key,
                    "sender_id": self.sender_id,
                    "message": message,
                    "phone": phone,
                },
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.timeout,
            )
            data = resp.json()
        except requests.Timeout:
            logger.warning("SMS gateway timeout for %s", mask_phone(phone))
            return DeliveryResult(success=False, error="SMS gateway timeout")
        except requests.RequestException as e:
            logger.error("Error sending SMS: %s", e)
            return DeliveryResult(success=False, error=str(e))
        except ValueError:
            return DeliveryResult(success=False, error="Invalid SMS gateway response")

        # 응답이 [{...}] 일 때도 있고 {...} 일 때도 있음
        first = data[0] if isinstance(data, list) and data else data
        if not isinstance(first, dict):
            return DeliveryResult(success=False, error="SMS send failed")

        if str(first.get("status_code")) == self.SUCCESS_STATUS:
            logger.info("SMS sent successfully to %s", mask_phone(phone))
            return DeliveryResult(success=True)

        return DeliveryResult(
            success=False, error=first.get("status_desc") or "SMS send failed"
        )


_solapi_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="solapi")


class SolapiGateway:
    def __init__(self, api_key=None, api_secret=None, from_number=None, timeout=None):
        self.api_key = api_key or getattr(settings, "SOLAPI_API_KEY", "")
        self.api_secret = api_secret or getattr(settings, "SOLAPI_API_SECRET", "")
        self.from_number = re.sub(
            r"[^0-9]", "", from_number or getattr(settings, "SOLAPI_FROM_NUMBER", "")
        )
        self.timeout = timeout or _timeout()

    def _client(self):
        from solapi import SolapiMessageService

        return SolapiMessageService(api_key=self.api_key, api_secret=self.api_secret)

    def send(self, phone: str, message: str) -> DeliveryResult:
        if not self.api_key or not self.api_secret or not self.from_number:
            return DeliveryResult(success=False, error="SMS gateway not configured")

        from solapi.model import RequestMessage

        request = RequestMessage(from_=self.from_number, to=phone, text=message)
        future = _solapi_pool.submit(self._client().send, request)
        try:
            res = future.result(timeout=self.timeout)
        except FutureTimeoutError:
            logger.warning("SOLAPI send timeout for %s", mask_phone(phone))
            return DeliveryResult(success=False, error="SMS gateway timeout")
        except Exception as e:
            logger.error("SOLAPI_SEND_FAILED: %s", e)
            return DeliveryResult(success=False, error=f"SOLAPI_SEND_FAILED: {e}")

        logger.debug("SOLAPI send result: %s", res)
        return DeliveryResult(success=True)


def get_delivery_gateway(path: str = None):
    backend = path or getattr(
        settings, "OTP_SMS_BACKEND", "app.authentication.delivery.ConsoleGateway"
    )
    return import_string(backend)()


def deliver(phone: str, message: str, gateway=None) -> DeliveryResult:
    gateway = gateway or get_delivery_gateway()
    try:
        return gateway.send(phone, message)
    except Exception as e:
        logger.exception("SMS backend %s crashed", type(gateway).__name__)
        return DeliveryResult(success=False, error=str(e) or "Failed to send SMS")
