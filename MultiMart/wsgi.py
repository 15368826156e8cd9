"""
WSGI config for the MultiMart project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'MultiMart.settings')

application = get_wsgi_application()
