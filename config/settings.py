import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = os.environ.get('DJANGO_DEBUG', '0') == '1'
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'geoschema',
]

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
USE_TZ = True
TIME_ZONE = 'UTC'

# Database alias the credit ledger and artifact store are bound to.
GEOSCHEMA_DATABASE = os.environ.get('GEOSCHEMA_DATABASE', 'default')
DEFAULT_CREDITS = int(os.environ.get('DEFAULT_CREDITS', '10'))

OPENAI_API_BASE_URL = os.environ.get('OPENAI_API_BASE_URL', 'https://api.openai.com/v1')
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
OPENAI_TIMEOUT = float(os.environ.get('OPENAI_TIMEOUT', '30'))
# Per worker process; requests per second against the model API.
OPENAI_RATE_LIMIT = int(os.environ.get('OPENAI_RATE_LIMIT', '5'))
OPENAI_MAX_RETRIES = int(os.environ.get('OPENAI_MAX_RETRIES', '3'))

CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', '0') == '1'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'verbose'},
    },
    'loggers': {
        'geoschema': {
            'handlers': ['console'],
            'level': os.environ.get('GEOSCHEMA_LOG_LEVEL', 'INFO'),
        },
    },
}
