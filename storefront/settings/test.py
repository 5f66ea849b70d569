from decimal import Decimal

from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

SHIPPING_COST = Decimal("300")
SITE_MAINTENANCE_MODE = False
ORDERS_ADMIN_EMAILS = "orders@example.com"
PUBLIC_APP_URL = "https://shop.example.com"

PAYMOB = {
    **PAYMOB,
    "SECRET_KEY": "test-paymob-secret",
    "PUBLIC_KEY": "test-public",
    "HMAC_SECRET": "test-hmac-secret",
    "INTEGRATION_ID": "12345",
    "IFRAME_ID": "",
}

MOBILE_JWT_SECRET = "test-mobile-secret"
