from .settings import *  # noqa: F401,F403
import os
import tempfile

DEBUG = False
SECRET_KEY = 'test-secret-key-not-for-production'

TEST_DIR = tempfile.mkdtemp()

# File database so concurrent tests can open several connections; IMMEDIATE
# makes writers queue for the lock instead of failing with 'database is locked'
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(TEST_DIR, 'stockroom.sqlite3'),
        'TEST': {
            'NAME': os.path.join(TEST_DIR, 'test_stockroom.sqlite3'),
        },
        'OPTIONS': {
            'timeout': 20,
            'transaction_mode': 'IMMEDIATE',
        },
    }
}


# Build tables straight from the models
class DisableMigrations:
    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None


MIGRATION_MODULES = DisableMigrations()

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'test-cache',
    }
}

MEDIA_ROOT = os.path.join(TEST_DIR, 'media')

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'root': {
        'handlers': ['null'],
        'level': 'INFO',
    },
}
