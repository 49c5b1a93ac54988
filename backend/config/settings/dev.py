# config/settings/dev.py

from .base import *

DEBUG = True
ALLOWED_HOSTS = ['*']

# Storefront dev server
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
CORS_ALLOW_ALL_ORIGINS = True  # Only for development
CSRF_TRUSTED_ORIGINS = CORS_ALLOWED_ORIGINS + [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]

# Order and shipment e-mails go to the console
EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

# Providers stay on sandbox locally; without keys initiation is simulated.
# Set APP_URL to a tunnel (ngrok etc.) to receive real sandbox callbacks.
MPESA_ENVIRONMENT = 'sandbox'
PESAPAL_ENVIRONMENT = 'sandbox'
APP_URL = config('APP_URL', default='http://localhost:8000')

LOGGING['loggers'].update({
    'apps': {
        'handlers': ['console'],
        'level': 'DEBUG',
        'propagate': False,
    },
})

# Run notification e-mails and the payment sweep inline unless a worker is up
CELERY_TASK_ALWAYS_EAGER = config('CELERY_ALWAYS_EAGER', default=False, cast=bool)
CELERY_TASK_EAGER_PROPAGATES = True
MPESA_QUERY_AFTER_MINUTES = config('MPESA_QUERY_AFTER_MINUTES', default=2, cast=int)

# Anonymous carts live in the session; keep sessions in redis with the cache
SESSION_ENGINE = 'django.contrib.sessions.backends.cache'
SESSION_CACHE_ALIAS = 'default'

SPECTACULAR_SETTINGS.update({
    'SERVE_INCLUDE_SCHEMA': True,
    'SWAGGER_UI_SETTINGS': {
        'deepLinking': True,
        'displayOperationId': True,
    },
})
