"""WSGI entry point for the mosque field reports project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'mosquereports.settings')

application = get_wsgi_application()
