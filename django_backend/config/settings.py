import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "django_filters",
    "apps.common",
    "apps.users",
    "apps.projects",
    "apps.analytics",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "apps.common.middleware.RequestLoggingMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "apps.common.middleware.ProviderSessionMiddleware",
    "apps.common.middleware.LoginRequiredMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [
            BASE_DIR / "templates",
        ],
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

WSGI_APPLICATION = "config.wsgi.application"

# Relational store: identities, roles, organizations
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRES_DB", "taskflow"),
        "USER": os.getenv("POSTGRES_USER", "taskflow_user"),
        "PASSWORD": os.getenv("POSTGRES_PASSWORD", "taskflow_pass"),
        "HOST": os.getenv("POSTGRES_HOST", "db"),
        "PORT": int(os.getenv("POSTGRES_PORT", "5432")),
        "CONN_MAX_AGE": int(os.getenv("POSTGRES_CONN_MAX_AGE", "60")),
    }
}

# Document store: projects, tasks
MONGODB = {
    "URI": os.getenv("MONGODB_URI", "mongodb://mongo:27017"),
    "NAME": os.getenv("MONGODB_DB", "taskflow"),
    "CLIENT_CLASS": "pymongo.MongoClient",
    "OPTIONS": {
        "serverSelectionTimeoutMS": int(os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000")),
        "appname": "taskflow",
    },
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Custom User Model
AUTH_USER_MODEL = "users.User"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "apps.common.auth.ProviderJWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "EXCEPTION_HANDLER": "apps.common.handlers.api_exception_handler",
    "UNAUTHENTICATED_USER": "django.contrib.auth.models.AnonymousUser",
}

REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": os.getenv("CACHE_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}/2"),
        "KEY_PREFIX": "taskflow",
    }
}

# Identity provider (session JWTs, webhooks, backend API)
IDENTITY_PROVIDER = {
    "JWKS_URL": os.getenv("IDENTITY_PROVIDER_JWKS_URL", "https://api.clerk.com/v1/jwks"),
    "ISSUER": os.getenv("IDENTITY_PROVIDER_ISSUER", ""),
    "AUTHORIZED_PARTIES": [
        p.strip() for p in os.getenv("IDENTITY_PROVIDER_AUTHORIZED_PARTIES", "").split(",") if p.strip()
    ],
    "LEEWAY_SECONDS": int(os.getenv("IDENTITY_PROVIDER_LEEWAY_SECONDS", "30")),
    "SESSION_COOKIE": os.getenv("IDENTITY_PROVIDER_SESSION_COOKIE", "__session"),
    "SIGN_IN_URL": os.getenv("IDENTITY_PROVIDER_SIGN_IN_URL", "/sign-in"),
    "API_URL": os.getenv("IDENTITY_PROVIDER_API_URL", "https://api.clerk.com/v1"),
    "SECRET_KEY": os.getenv("IDENTITY_PROVIDER_SECRET_KEY", ""),
    "WEBHOOK_SECRET": os.getenv("IDENTITY_PROVIDER_WEBHOOK_SECRET", ""),
    "WEBHOOK_TOLERANCE_SECONDS": int(os.getenv("IDENTITY_PROVIDER_WEBHOOK_TOLERANCE_SECONDS", "300")),
    "HTTP_TIMEOUT_SECONDS": float(os.getenv("IDENTITY_PROVIDER_HTTP_TIMEOUT_SECONDS", "10")),
    "SYNC_ENABLED": os.getenv("IDENTITY_PROVIDER_SYNC_ENABLED", "0") == "1",
}

LOGIN_URL = IDENTITY_PROVIDER["SIGN_IN_URL"]

DEFAULT_ORGANIZATION_SLUG = os.getenv("DEFAULT_ORGANIZATION_SLUG", "default")
DEFAULT_ROLE_NAME = os.getenv("DEFAULT_ROLE_NAME", "member")

RATE_LIMIT = {
    "ENABLED": os.getenv("RATE_LIMIT_ENABLED", "1") == "1",
    "WINDOW_SECONDS": int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
    "DEFAULT_LIMIT": int(os.getenv("RATE_LIMIT_DEFAULT_LIMIT", "100")),
    "STORE": "apps.common.ratelimit.CacheRateLimitStore",
    "CACHE_ALIAS": "default",
}

ANALYTICS = {
    "QUERY_TIMEOUT_SECONDS": float(os.getenv("ANALYTICS_QUERY_TIMEOUT_SECONDS", "10")),
    "SNAPSHOT_READS": os.getenv("ANALYTICS_SNAPSHOT_READS", "0") == "1",
    "TREND_DAYS": 7,
    "RECENT_PROJECTS": 5,
    "RECENT_TASKS": 10,
}

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", f"redis://{REDIS_HOST}:{REDIS_PORT}/1")
CELERY_TIMEZONE = TIME_ZONE

# Celery Beat Schedule
CELERY_BEAT_SCHEDULE = {}
if IDENTITY_PROVIDER["SYNC_ENABLED"]:
    CELERY_BEAT_SCHEDULE["sync-identities"] = {
        "task": "apps.users.celery_tasks.sync_identities_task",
        "schedule": timedelta(minutes=int(os.getenv("IDENTITY_PROVIDER_SYNC_INTERVAL_MINUTES", "30"))),
    }

# Kafka Configuration
KAFKA_ENABLED = os.getenv("KAFKA_ENABLED", "1") == "1"
KAFKA_BOOTSTRAP_SERVERS = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
KAFKA_CLIENT_ID = os.getenv("KAFKA_CLIENT_ID", "taskflow")
KAFKA_REQUEST_TIMEOUT_MS = int(os.getenv("KAFKA_REQUEST_TIMEOUT_MS", "30000"))

# Event Publisher Configuration
EVENT_PUBLISHER_TYPE = os.getenv("EVENT_PUBLISHER_TYPE", "kafka")  # kafka, memory

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
        "kafka": {"level": "WARNING"},
    },
}
