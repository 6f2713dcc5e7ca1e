from pathlib import Path
import os
from dotenv import load_dotenv
import dj_database_url

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")  # load once

ENV = os.getenv("DJANGO_ENV", "development").lower()  # "development" | "production" | "staging"
DEBUG_ENV = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")

# Force DEBUG off if ENV=production (even if someone sets DEBUG=true by accident)
DEBUG = False if ENV == "production" else DEBUG_ENV

DJANGO_ENV = ENV

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY")

if not SECRET_KEY:
	if ENV == "production":
		raise ValueError("DJANGO_SECRET_KEY must be set in production")
	SECRET_KEY = "insecure-development-key"

INSTALLED_APPS = [
	'django.contrib.admin',
	'django.contrib.auth',
	'django.contrib.contenttypes',
	'django.contrib.sessions',
	'django.contrib.messages',
	'django.contrib.staticfiles',
	'corsheaders',
	'rest_framework',
	'drf_spectacular',
	'domains',
	'scanner',
]

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

CORS_ALLOWED_ORIGINS = [
	o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o.strip()
]
CORS_ALLOW_CREDENTIALS = True

CORS_ALLOW_METHODS = [
	"GET",
	"POST",
	"OPTIONS",
]

CORS_ALLOW_HEADERS = [
	"content-type",
	"authorization",
]

ALLOWED_HOSTS = [
	h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()
]

REST_FRAMEWORK = {
	'DEFAULT_AUTHENTICATION_CLASSES': (
		'rest_framework_simplejwt.authentication.JWTAuthentication',
		'rest_framework.authentication.SessionAuthentication',
	),
	"DEFAULT_PERMISSION_CLASSES": (
		"rest_framework.permissions.IsAuthenticated",
	),
	"DEFAULT_RENDERER_CLASSES": (
		"rest_framework.renderers.JSONRenderer",
	),
	"DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
	"TITLE": "Privacy Audit API",
	"DESCRIPTION": "Site privacy analysis: crawl, classify, diff and recommend.",
	"VERSION": "1.0.0",
}

ROOT_URLCONF = 'privacyaudit.urls'

TEMPLATES = [
	{
		'BACKEND': 'django.template.backends.django.DjangoTemplates',
		'DIRS': [],
		'APP_DIRS': True,
		'OPTIONS': {
			'context_processors': [
				'django.template.context_processors.request',
				'django.contrib.auth.context_processors.auth',
				'django.contrib.messages.context_processors.messages',
			],
		},
	},
]

WSGI_APPLICATION = 'privacyaudit.wsgi.application'

# Database
if ENV == "production":
	DATABASES = {
		"default": dj_database_url.config(
			default=os.getenv("DATABASE_URL"),
			conn_max_age=600,
			ssl_require=True
		)
	}
else:
	DATABASES = {
		"default": {
			"ENGINE": "django.db.backends.sqlite3",
			"NAME": BASE_DIR / "db.sqlite3",
		}
	}

AUTH_PASSWORD_VALIDATORS = [
	{
		'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
	},
	{
		'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
	},
	{
		'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
	},
	{
		'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
	},
]

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "/static/"

STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
	"default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
	"staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# --- Celery ---
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TASK_TRACK_STARTED = True
# Two concurrent analyses per worker; each one owns a whole Chromium.
CELERY_WORKER_CONCURRENCY = int(os.getenv("CELERY_WORKER_CONCURRENCY", "2"))
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ACKS_LATE = True
CELERY_BROKER_TRANSPORT_OPTIONS = {
	"priority_steps": list(range(10)),
	"queue_order_strategy": "priority",
}
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in ("1", "true", "yes")

# --- Site analysis ---
ANALYSIS = {
	"DEFAULT_TIMEOUT_MS": int(os.getenv("ANALYSIS_TIMEOUT_MS", "30000")),
	"SETTLE_MS": int(os.getenv("ANALYSIS_SETTLE_MS", "2000")),
	"PROBE_TIMEOUT_MS": int(os.getenv("ANALYSIS_PROBE_TIMEOUT_MS", "10000")),
	"PAUSE_MS_BETWEEN_PAGES": int(os.getenv("ANALYSIS_PAUSE_MS", "0")),
	"MAX_URLS_LIMIT": 1000,
	"MAX_DEPTH_LIMIT": 10,
	# Active runs older than this are force-failed before a new run starts.
	"STALE_LEASE_SECONDS": int(os.getenv("ANALYSIS_STALE_LEASE_SECONDS", "3600")),
	"RETRY_MAX_ATTEMPTS": int(os.getenv("ANALYSIS_RETRY_MAX_ATTEMPTS", "3")),
	"RETRY_BASE_DELAY_SECONDS": int(os.getenv("ANALYSIS_RETRY_BASE_DELAY", "30")),
	"RETRY_BACKOFF_FACTOR": 2,
	"HEADLESS": os.getenv("ANALYSIS_HEADLESS", "true").lower() in ("1", "true", "yes"),
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"console": {
			"format": "%(asctime)s %(levelname)s %(name)s %(message)s",
		},
	},
	"handlers": {
		"console": {
			"class": "logging.StreamHandler",
			"formatter": "console",
		},
	},
	"root": {"handlers": ["console"], "level": "WARNING"},
	"loggers": {
		"django": {"handlers": ["console"], "level": "INFO", "propagate": False},
		"celery": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"scanner": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
		"domains": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
	},
}

# Frontend base (used in CORS defaults and links in API responses)
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")
