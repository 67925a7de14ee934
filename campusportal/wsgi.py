"""
WSGI config for the campus portal project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campusportal.settings')

application = get_wsgi_application()
