from .base import *

DEBUG = True

SECRET_KEY = SECRET_KEY or "dev-insecure-secret-key"

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
