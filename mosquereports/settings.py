"""Django settings for the mosque field reports project.

These settings configure the review front end used by field supervisors to
record meal evaluations, maintenance reports and attendance counts at mosque
sites.  Records themselves live in an external sheet store; the settings
below describe how to reach it and where the local JSON snapshots of its
sheets are kept.  Where appropriate, sensible defaults have been chosen so
the project runs out of the box with SQLite.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from django.core.exceptions import ImproperlyConfigured

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


# Load environment variables from a local .env file for development setups.
def load_env_file(path: Path) -> None:
    if not path.exists():
        return

    for line in path.read_text(encoding='utf-8').splitlines():
        if not line or line.strip().startswith("#"):
            continue

        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


# Prefer a local .env file but fall back to .env.sample when the project is
# first checked out. The sample values are insecure and must be overridden in
# real deployments.
env_path = BASE_DIR / ".env"
sample_env_path = BASE_DIR / ".env.sample"

if env_path.exists():
    load_env_file(env_path)
elif sample_env_path.exists():
    warnings.warn(
        ".env not found; using values from .env.sample. Create a .env file to "
        "override these defaults.",
        RuntimeWarning,
        stacklevel=2,
    )
    load_env_file(sample_env_path)


def env_required(name: str) -> str:
    """Fetch a required environment variable or raise a helpful error."""

    value = os.getenv(name)
    if not value:
        raise ImproperlyConfigured(
            f"Set the {name} environment variable (see .env.sample for defaults)."
        )
    return value


def env_flag(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env_required("DJANGO_SECRET_KEY")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env_flag("DJANGO_DEBUG")

ALLOWED_HOSTS: list[str] = [
    host.strip()
    for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]


# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'fieldreports',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'whitenoise.middleware.WhiteNoiseMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'mosquereports.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'builtins': [
                'django.templatetags.static',
            ],
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
                'fieldreports.context_processors.language',
            ],
        },
    },
]

WSGI_APPLICATION = 'mosquereports.wsgi.application'


# Database
# PostgreSQL is used whenever PGHOST is configured; local checkouts and the
# test-suite fall back to SQLite.
if os.getenv('PGHOST'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('PGDATABASE', 'mosquereports'),
            'USER': os.getenv('PGUSER', 'mosquereports'),
            'PASSWORD': env_required('PGPASSWORD'),
            'HOST': env_required('PGHOST'),
            'PORT': os.getenv('PGPORT', '5432'),
            # Keep connections open for a minute to improve performance for repeated queries
            'CONN_MAX_AGE': 60,
            'OPTIONS': {
                'sslmode': os.getenv('PGSSLMODE', 'prefer'),
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

# Password validation
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

# Internationalization
LANGUAGE_CODE = 'ar'

TIME_ZONE = os.getenv('TIME_ZONE', 'Asia/Riyadh')

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
STATIC_URL = '/static/'
STATIC_ROOT = os.path.join(BASE_DIR, 'staticfiles')

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Where Django should redirect after successful login
LOGIN_REDIRECT_URL = 'home'
LOGIN_URL = 'login'


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv('DJANGO_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'pipe': {
            'format': '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'pipe',
        },
    },
    'loggers': {
        'fieldreports': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}


# ---------------------------------------------------------------------------
# External record store
# ---------------------------------------------------------------------------

# Endpoint of the sheet store that owns every field report.  Reads are
# ``GET <url>?sheet=<name>``; writes are JSON ``POST`` requests carrying an
# ``action`` key.
RECORD_STORE_URL = os.getenv('RECORD_STORE_URL', '')
RECORD_STORE_TOKEN = os.getenv('RECORD_STORE_TOKEN', '')

# Request timeout (seconds) and TLS configuration when contacting the store.
RECORD_STORE_TIMEOUT = int(os.getenv('RECORD_STORE_TIMEOUT', '30'))
RECORD_STORE_VERIFY_TLS = os.getenv('RECORD_STORE_VERIFY_TLS', 'True').lower() not in ('false', '0', 'no')
RECORD_STORE_TLS_CERT = os.getenv('RECORD_STORE_TLS_CERT') or None

# Location on disk where sheet snapshots are cached between refreshes.
FIELD_REPORTS_CACHE_ROOT = Path(
    os.getenv('FIELD_REPORTS_CACHE_ROOT', os.path.join(BASE_DIR, 'media', 'sheet_cache'))
)

# Worker threads used to send saves and status changes to the store.
FIELD_REPORTS_DISPATCH_WORKERS = int(os.getenv('FIELD_REPORTS_DISPATCH_WORKERS', '2'))
