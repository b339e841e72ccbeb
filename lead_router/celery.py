"""
Celery configuration for Lead Router.
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lead_router.settings')

app = Celery('lead_router')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
