"""
WSGI config for the Grandstand project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'grandstand.settings')

application = get_wsgi_application()
