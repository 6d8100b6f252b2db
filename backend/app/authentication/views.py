# app/authentication/views.py
from rest_framework.parsers import JSONParser
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response
from rest_framework.views import APIView

from app.common.errors import InvalidInput, OtpError, RateLimited
from app.common.phone import normalize_phone
from .services import issue_otp, parse_purpose, verify_otp


def ok(message: str, **extra):
    return Response({"success": True, "message": message, **extra})


def fail(err: OtpError):
    body = {"success": False, "error": err.message, "code": err.code}
    if isinstance(err, RateLimited):
        body["retryAfter"] = err.retry_after
        return Response(
            body, status=err.status_code, headers={"Retry-After": str(err.retry_after)}
        )
    return Response(body, status=err.status_code)


class OtpView(APIView):
    """
    POST {action: "send"|"verify", phone, token?, purpose?}
    CORS 헤더는 corsheaders 미들웨어가 붙인다.
    """

    authentication_classes = []
    permission_classes = []
    parser_classes = [JSONParser]
    renderer_classes = [JSONRenderer]

    def options(self, request, *args, **kwargs):
        return Response(status=200)

    def post(self, request):
        data = request.data
        try:
            if not isinstance(data, dict):
                raise InvalidInput("Request body must be a JSON object")

            action = data.get("action") or "send"
            if action not in ("send", "verify"):
                raise InvalidInput("Invalid action. Use 'send' or 'verify'")

            phone = data.get("phone")
            if not phone:
                raise InvalidInput("phone is required")

            identifier = normalize_phone(phone)
            purpose = parse_purpose(data.get("purpose"))

            if action == "send":
                issue_otp(identifier, purpose)
                return ok("OTP sent successfully")

            token = data.get("token")
            if not token:
                raise InvalidInput("token is required")

            user = verify_otp(identifier, purpose, token)
            return ok("OTP verified successfully", user=user)
        except OtpError as e:
            return fail(e)
