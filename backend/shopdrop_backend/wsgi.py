"""
WSGI config for shopdrop_backend.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "shopdrop_backend.settings")

application = get_wsgi_application()
