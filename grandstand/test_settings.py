"""
Django test settings for the Grandstand project.
Overrides main settings for testing.
"""

from .settings import *

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

TEST_RUNNER = 'django.test.runner.DiscoverRunner'

# Use faster password hasher for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Disable token blacklist checks during tests
SIMPLE_JWT = {
    **SIMPLE_JWT,
    'BLACKLIST_AFTER_ROTATION': False,
}

# Disable throttling for tests
REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    'DEFAULT_THROTTLE_CLASSES': [],
    'DEFAULT_THROTTLE_RATES': {
        'anon': None,
        'user': None,
    },
}

EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# Fan context and last-known stats are read back within a test
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'grandstand-tests',
    }
}

# Run Celery tasks inline, no broker needed
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

# Never talk to the real processor from tests
STRIPE_SECRET_KEY = 'sk_test_grandstand'
FRONTEND_URL = 'https://grandstand.test'

MONETIZATION = {
    **MONETIZATION,
    'SUBSCRIPTION_MODE': 'checkout',
}

SUPERFAN_THRESHOLD_CENTS = 5000

# Use a simpler logging setup for tests
LOGGING = {
    'version': 1,
    'disable_existing_loggers': True,
    'handlers': {
        'null': {
            'class': 'logging.NullHandler',
        },
    },
    'loggers': {
        'django': {
            'handlers': ['null'],
            'propagate': False,
            'level': 'INFO',
        },
        'grandstand': {
            'handlers': ['null'],
            'propagate': False,
            'level': 'INFO',
        },
    },
}
