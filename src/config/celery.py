"""
Celery configuration for the shop backend.

DJANGO_SETTINGS_MODULE is set before the app is instantiated so Celery
reads the Django settings (CELERY_ prefix).  Payment status polls run as
``payments.poll_payment_status`` tasks.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("shop")

# Reads Django settings with the CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# Discovers tasks.py in every installed app
app.autodiscover_tasks()
