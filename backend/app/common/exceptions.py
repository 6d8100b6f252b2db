import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    response = exception_handler(exc, context)

    if response is None:
        # DRF가 모르는 예외: 로그 남기고 500 envelope
        logger.exception("Unhandled error in %s", context.get("view"))
        return Response(
            {"success": False, "error": "Internal server error", "code": "SERVER_ERROR"},
            status=500,
        )

    detail = response.data.get("detail") if isinstance(response.data, dict) else None
    response.data = {
        "success": False,
        "error": str(detail or "Invalid request"),
        "code": "VALIDATION_ERROR" if response.status_code == 400 else "REQUEST_ERROR",
    }
    return response
