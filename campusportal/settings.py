# campusportal/settings.py

"""
Django settings for the campus portal project.

Secrets and deployment values come from environment variables; operational
policy (payment window, prices, request limits) lives in
core.models.PortalSettings so registrar staff can change it at runtime.
"""

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Apps live under apps/ and are imported as top-level packages
sys.path.insert(0, str(BASE_DIR / 'apps'))


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def env_list(name, default=''):
    return [item.strip() for item in os.environ.get(name, default).split(',') if item.strip()]


# =============================================================================
# CORE
# =============================================================================

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-campusportal-dev-key')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = env_list('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Portal apps
    'utils',
    'core',
    'students',
    'events',
    'registrar',
    'scholarships',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'utils.middleware.AuditContextMiddleware',
]

ROOT_URLCONF = 'campusportal.urls'

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

WSGI_APPLICATION = 'campusportal.wsgi.application'

# =============================================================================
# DATABASE
# =============================================================================

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('DB_USER', ''),
        'PASSWORD': os.environ.get('DB_PASSWORD', ''),
        'HOST': os.environ.get('DB_HOST', ''),
        'PORT': os.environ.get('DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# LOCALIZATION
# =============================================================================

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('PORTAL_TIME_ZONE', 'Asia/Manila')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

# =============================================================================
# EMAIL
# =============================================================================

EMAIL_BACKEND = os.environ.get('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.environ.get('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.environ.get('EMAIL_PORT', '25'))
EMAIL_HOST_USER = os.environ.get('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.environ.get('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = env_bool('EMAIL_USE_TLS', False)
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'Campus Portal <noreply@campusportal.local>')

# =============================================================================
# PORTAL INTEGRATIONS
# =============================================================================

# Semaphore SMS gateway
SEMAPHORE_API_URL = os.environ.get('SEMAPHORE_API_URL', 'https://api.semaphore.co/api/v4/messages')
SEMAPHORE_API_KEY = os.environ.get('SEMAPHORE_API_KEY', '')
SEMAPHORE_SENDER_NAME = os.environ.get('SEMAPHORE_SENDER_NAME', 'CAMPUS-DRS')

# PayMongo payment gateway
PAYMONGO_API_URL = os.environ.get('PAYMONGO_API_URL', 'https://api.paymongo.com/v1')
PAYMONGO_SECRET_KEY = os.environ.get('PAYMONGO_SECRET_KEY', '')
PAYMONGO_WEBHOOK_SECRET = os.environ.get('PAYMONGO_WEBHOOK_SECRET', '')

# Outbound HTTP timeout (seconds) for SMS and payment gateway calls
INTEGRATION_HTTP_TIMEOUT = float(os.environ.get('INTEGRATION_HTTP_TIMEOUT', '10'))

# Registrar staff receiving new-request and payment notifications
REGISTRAR_STAFF_EMAILS = env_list('REGISTRAR_STAFF_EMAILS')

# Hard cap on recurring event expansion
RECURRENCE_MAX_OCCURRENCES = int(os.environ.get('RECURRENCE_MAX_OCCURRENCES', '100'))

# iCalendar export of events
EVENTS_CALENDAR_NAME = os.environ.get('EVENTS_CALENDAR_NAME', 'Campus Events')
EVENTS_CALENDAR_DESCRIPTION = os.environ.get('EVENTS_CALENDAR_DESCRIPTION', 'Student Government Events Calendar')
EVENTS_ORGANIZER_EMAIL = os.environ.get('EVENTS_ORGANIZER_EMAIL', 'events@campusportal.local')
EVENTS_UID_DOMAIN = os.environ.get('EVENTS_UID_DOMAIN', 'campusportal.local')
EVENT_PAGE_URL = os.environ.get('EVENT_PAGE_URL', 'https://portal.campus.local/events/')

# Retries when a generated request number / payment reference collides
REFERENCE_NUMBER_MAX_ATTEMPTS = int(os.environ.get('REFERENCE_NUMBER_MAX_ATTEMPTS', '10'))

# Base URL printed on generated documents for QR verification
DOCUMENT_VERIFICATION_URL = os.environ.get(
    'DOCUMENT_VERIFICATION_URL', 'https://portal.campus.local/registrar/verify/'
)

# Letterhead on generated documents
INSTITUTION_NAME = os.environ.get('INSTITUTION_NAME', 'Campus University')
REGISTRAR_NAME = os.environ.get('REGISTRAR_NAME', 'University Registrar')

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
        'audit': {
            'format': '{asctime} AUDIT {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit_console': {
            'class': 'logging.StreamHandler',
            'formatter': 'audit',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'portal_audit': {
            'handlers': ['audit_console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
