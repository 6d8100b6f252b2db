# config/settings.py
import os
from pathlib import Path

from corsheaders.defaults import default_headers
from dotenv import load_dotenv
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # backend/
load_dotenv(BASE_DIR / ".env")


def _env_list(name: str, default: str):
    return [v.strip() for v in os.environ.get(name, default).split(",") if v.strip()]


REDIS_HOST = os.environ.get("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))
REDIS_DB = int(os.environ.get("REDIS_DB", "0"))


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-dev-only")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "")

CORS_ALLOW_ALL_ORIGINS = True
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOW_HEADERS = (*default_headers, "apikey", "x-client-info")

DATABASES = {
    "default": dj_database_url.config(
        default=os.environ.get("DATABASE_URL", f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
        conn_max_age=600,
    )
}

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # third party
    "rest_framework",
    "corsheaders",
    # local apps
    "app.common",
    "app.users",
    "app.sms_verifications",
    "app.authentication",
]

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.AllowAny",),
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "app.common.exceptions.custom_exception_handler",
}

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(levelname)s %(asctime)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": os.environ.get("LOG_LEVEL", "INFO")},
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

ROOT_URLCONF = "app.config.urls"

WSGI_APPLICATION = "app.config.wsgi.application"
ASGI_APPLICATION = "app.config.asgi.application"
APPEND_SLASH = False
USE_TZ = True
TIME_ZONE = "UTC"
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
AUTH_USER_MODEL = "users.User"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"
    },
}

# OTP 정책
OTP_CODE_LENGTH = int(os.environ.get("OTP_CODE_LENGTH", "6"))
OTP_TTL_SECONDS = int(os.environ.get("OTP_TTL_SECONDS", str(10 * 60)))  # 10분
OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "3"))
OTP_RESEND_COOLDOWN_SECONDS = int(os.environ.get("OTP_RESEND_COOLDOWN_SECONDS", "60"))
OTP_REGISTERED_PURPOSES = _env_list("OTP_REGISTERED_PURPOSES", "LOGIN,RESET")
OTP_DEFAULT_COUNTRY_CODE = os.environ.get("OTP_DEFAULT_COUNTRY_CODE", "254")
OTP_DEFAULT_ROLE = os.environ.get("OTP_DEFAULT_ROLE", "BUYER")

# 발급 락 (redis). 끄면 rate limit 은 best-effort
OTP_ISSUE_LOCK_ENABLED = os.environ.get("OTP_ISSUE_LOCK_ENABLED", "0") == "1"
OTP_ISSUE_LOCK_TIMEOUT_SECONDS = 10
OTP_ISSUE_LOCK_WAIT_SECONDS = 2

# SMS
OTP_SMS_BRAND = os.environ.get("OTP_SMS_BRAND", "SWIFTLINE")
OTP_SMS_TIMEOUT_SECONDS = float(os.environ.get("OTP_SMS_TIMEOUT_SECONDS", "5"))
BULK_SMS_API_KEY = os.environ.get("BULK_SMS_API_KEY", "")
BULK_SMS_SENDER_ID = os.environ.get("BULK_SMS_SENDER_ID", "XpressKard")
BULK_SMS_URL = os.environ.get(
    "BULK_SMS_URL", "https://sms.blessedtexts.com/api/sms/v1/sendsms"
)
SOLAPI_API_KEY = os.environ.get("SOLAPI_API_KEY", "")
SOLAPI_API_SECRET = os.environ.get("SOLAPI_API_SECRET", "")
SOLAPI_FROM_NUMBER = os.environ.get("SOLAPI_FROM_NUMBER", "")

# API 키 없으면 개발용 console backend
OTP_SMS_BACKEND = os.environ.get(
    "OTP_SMS_BACKEND",
    "app.authentication.delivery.BulkSmsGateway"
    if BULK_SMS_API_KEY
    else "app.authentication.delivery.ConsoleGateway",
)
