"""
Django settings for the dataroom project.

Values that differ between environments are read from the environment.
"""

import os
from pathlib import Path


def env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes', 'on')


# ==================================================
# BASE
# ==================================================

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-secret-key')
DEBUG = env_bool('DJANGO_DEBUG', True)
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',')

# ==================================================
# INSTALLED APPS
# ==================================================

INSTALLED_APPS = [
    # Django
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.staticfiles',

    # REST
    'rest_framework',
    'django_filters',

    # Local
    'contracts',
    'dataroom',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'dataroom.middleware.RequestLoggingMiddleware',
]

ROOT_URLCONF = 'core.urls'
WSGI_APPLICATION = 'core.wsgi.application'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
            ],
        },
    },
]

# ==================================================
# DATABASE (analytics event log)
# ==================================================

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DATAROOM_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ==================================================
# CACHE (session tokens)
# ==================================================

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'dataroom-sessions',
    }
}

# django.contrib.sessions is not installed; keep the (test-client-only) Django
# session machinery off the database.
SESSION_ENGINE = 'django.contrib.sessions.backends.signed_cookies'

# ==================================================
# I18N / TIME
# ==================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'

# ==================================================
# DATAROOM STORAGE
# ==================================================

DATAROOM_PUBLIC_DIR = Path(os.environ.get('DATAROOM_PUBLIC_DIR', BASE_DIR / 'public'))
DATAROOM_INVENTORY_PATH = DATAROOM_PUBLIC_DIR / 'inventory.json'
DATAROOM_USERS_PATH = DATAROOM_PUBLIC_DIR / 'users.json'
DATAROOM_UPLOAD_DIR = DATAROOM_PUBLIC_DIR / 'uploads'
DATAROOM_UPLOAD_URL_PREFIX = '/uploads/'

DATAROOM_SESSION_TIMEOUT = int(os.environ.get('DATAROOM_SESSION_TIMEOUT', 30 * 60))
ANALYTICS_MAX_EVENTS = int(os.environ.get('ANALYTICS_MAX_EVENTS', 1000))
FILE_UPLOAD_MAX_SIZE = int(os.environ.get('FILE_UPLOAD_MAX_SIZE', 50 * 1024 * 1024))

# Let large uploads spill to temporary files instead of memory
DATA_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024

# ==================================================
# REST FRAMEWORK
# ==================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'dataroom.authentication.SessionTokenAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'dataroom.permissions.IsDataroomUser',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'UNAUTHENTICATED_USER': None,
}

# ==================================================
# CELERY
# ==================================================

CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']

# ==================================================
# LOGGING
# ==================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{levelname}] {asctime} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'dataroom': {
            'level': os.environ.get('DATAROOM_LOG_LEVEL', 'INFO'),
        },
    },
}
