import os
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

from django.core.exceptions import ImproperlyConfigured
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"{name} must be an integer.")


POS_ENV = os.getenv("POS_ENV", os.getenv("DJANGO_ENV", "dev")).strip().lower()
if POS_ENV not in {"dev", "staging", "prod"}:
    raise ImproperlyConfigured("POS_ENV must be one of: dev, staging, prod.")
IS_DEV = POS_ENV == "dev"

DEBUG = env_bool("DEBUG", default=IS_DEV)

SECRET_KEY = os.getenv("SECRET_KEY") or ("waterpark-pos-insecure-dev-key" if IS_DEV else "")
if not SECRET_KEY:
    raise ImproperlyConfigured("SECRET_KEY must be set outside dev.")

ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"] if IS_DEV else [])
if not IS_DEV and not ALLOWED_HOSTS:
    raise ImproperlyConfigured("ALLOWED_HOSTS must be set outside dev.")

# The counter front-end is served from its own origin.
CORS_ALLOW_ALL_ORIGINS = env_bool("CORS_ALLOW_ALL_ORIGINS", default=IS_DEV)
CORS_ALLOWED_ORIGINS = env_list("CORS_ALLOWED_ORIGINS")
CSRF_TRUSTED_ORIGINS = env_list("CSRF_TRUSTED_ORIGINS")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt",
    "corsheaders",
    "core",
    "catalog",
    "rentals",
    "tickets",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "common.logging.RequestLogMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]


def database_from_env() -> dict[str, str]:
    """
    Resolve the default database.

    `DATABASE_URL` wins (postgres:// or sqlite://). Otherwise the DB_* parts
    describe a PostgreSQL server. In dev, missing parts fall back to a local
    SQLite file so the counters can run on a single machine.
    """
    url = os.getenv("DATABASE_URL", "").strip()
    if url:
        parsed = urlparse(url)
        if parsed.scheme == "sqlite":
            name = parsed.path[1:] if parsed.path.startswith("//") else parsed.path.lstrip("/")
            if not name:
                raise ImproperlyConfigured("DATABASE_URL must name a file for sqlite.")
            return {"ENGINE": "django.db.backends.sqlite3", "NAME": name}
        if parsed.scheme not in {"postgres", "postgresql"}:
            raise ImproperlyConfigured("DATABASE_URL must use the postgres:// or sqlite:// scheme.")
        if parsed.path in ("", "/"):
            raise ImproperlyConfigured("DATABASE_URL must include a database name.")
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": parsed.path.lstrip("/"),
            "USER": parsed.username or "",
            "PASSWORD": parsed.password or "",
            "HOST": parsed.hostname or "",
            "PORT": str(parsed.port or ""),
        }

    parts = {field: os.getenv(f"DB_{field}", "") for field in ("NAME", "USER", "PASSWORD", "HOST", "PORT")}
    missing = [f"DB_{field}" for field, value in parts.items() if not value]
    if missing:
        if IS_DEV:
            return {"ENGINE": "django.db.backends.sqlite3", "NAME": os.getenv("POS_SQLITE_PATH", str(BASE_DIR / "db.sqlite3"))}
        raise ImproperlyConfigured(f"Set DATABASE_URL or all DB_* vars. Missing: {', '.join(missing)}.")
    return {"ENGINE": "django.db.backends.postgresql", **parts}


DATABASES = {"default": database_from_env()}

AUTH_USER_MODEL = "core.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
# Operator's civil time; receipts, day summaries and date filters use it.
TIME_ZONE = os.getenv("POS_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_PAGINATION_CLASS": "common.pagination.StandardResultsSetPagination",
    "PAGE_SIZE": env_int("POS_PAGE_SIZE", 50),
    "EXCEPTION_HANDLER": "common.exceptions.custom_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": os.getenv("DRF_THROTTLE_ANON", "1000/hour"),
        "user": os.getenv("DRF_THROTTLE_USER", "10000/hour"),
        "auth": os.getenv("DRF_THROTTLE_AUTH", "30/minute"),
    },
}

# A counter shift runs a full day; one login should cover it.
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=env_int("JWT_ACCESS_HOURS", 12)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=env_int("JWT_REFRESH_DAYS", 7)),
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "waterpark-pos-throttle-cache",
    }
}

SECURE_SSL_REDIRECT = env_bool("SECURE_SSL_REDIRECT", default=not IS_DEV)
SESSION_COOKIE_SECURE = env_bool("SESSION_COOKIE_SECURE", default=not IS_DEV)
CSRF_COOKIE_SECURE = env_bool("CSRF_COOKIE_SECURE", default=not IS_DEV)
SECURE_HSTS_SECONDS = env_int("SECURE_HSTS_SECONDS", 0 if IS_DEV else 31536000)
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
if env_bool("SECURE_PROXY_SSL_HEADER_ENABLED", default=not IS_DEV):
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {"()": "common.logging.JsonFormatter"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "api.request": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "security.authorization": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "rentals": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "tickets": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
