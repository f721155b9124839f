"""
Celery application factory.
"""

from celery import Celery

celery_app = Celery("phaseflow")
celery_app.config_from_object("phaseflow.celeryconfig")

# Auto-discover tasks in these modules
celery_app.autodiscover_tasks([
    "phaseflow.tasks.callback_tasks",
])
