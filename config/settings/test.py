# config/settings/test.py
"""
Settings for the test suite: local database, in-memory cache, eager Celery.
"""
import tempfile

from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key-not-for-production'

ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': dj_database_url.config(
        default=config('TEST_DATABASE_URL', default='sqlite:///' + str(BASE_DIR / 'test.sqlite3')),
    )
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

REST_FRAMEWORK['DEFAULT_THROTTLE_CLASSES'] = []
REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'] = dict(REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'], auth='10000/minute')

TMS = dict(TMS, STORAGE_ROOT=tempfile.mkdtemp(prefix='tms-test-storage-'))

MAPBOX_API_KEY = ''

LOGGING['root']['level'] = 'WARNING'
LOGGING['loggers']['apps']['level'] = 'WARNING'
