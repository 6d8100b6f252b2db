# app/common/errors.py


class OtpError(Exception):
    """
    OTP 흐름의 모든 실패는 이 계열로 올라오고, view에서 fail(...)로 변환된다.
    """

    code = "OTP_ERROR"
    message = "OTP request failed"
    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidInput(OtpError):
    code = "VALIDATION_ERROR"
    message = "Invalid request"


class NotRegistered(OtpError):
    code = "USER_NOT_REGISTERED"
    message = "Phone number not registered. Please sign up first."


class RateLimited(OtpError):
    code = "RATE_LIMITED"
    message = "Please wait before requesting another OTP"
    status_code = 429

    def __init__(self, retry_after: int, message: str = None):
        self.retry_after = retry_after
        super().__init__(message)


class StorageFailure(OtpError):
    code = "STORAGE_ERROR"
    message = "Failed to generate OTP"
    status_code = 500


class DeliveryFailed(OtpError):
    # 레코드는 이미 저장된 상태 (다음 verify에서 유효)
    code = "SMS_SEND_FAILED"
    message = "Failed to send SMS"
    status_code = 500


class NoPendingOtp(OtpError):
    code = "OTP_NOT_FOUND"
    message = "No OTP found. Please request a new one."


class OtpExpired(OtpError):
    code = "OTP_EXPIRED"
    message = "OTP expired. Please request a new one."


class TooManyAttempts(OtpError):
    code = "OTP_TOO_MANY_ATTEMPTS"
    message = "Too many attempts. Please request a new OTP."


class InvalidCode(OtpError):
    code = "OTP_INVALID_CODE"
    message = "Invalid OTP code"


class IdentityNotFound(OtpError):
    code = "USER_NOT_FOUND"
    message = "User not found"


