"""
WSGI config for spectrum_lims project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'spectrum_lims.settings')
application = get_wsgi_application()
