"""
Celery configuration for phase callback workers.

Loaded by `celery_app.config_from_object("phaseflow.celeryconfig")` in
phaseflow/tasks/__init__.py.  Broker/result-backend URLs and the callback
queue name come from Settings (environment / .env).
"""

from phaseflow.core.config import settings

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = settings.CELERY_BROKER_URL
result_backend = settings.CELERY_RESULT_BACKEND

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge after completion so a crashed worker's callback is redelivered
task_acks_late = True
task_reject_on_worker_lost = True

# One task at a time per process
worker_prefetch_multiplier = 1

task_soft_time_limit = 300    # 5 min: raises SoftTimeLimitExceeded
task_time_limit = 330         # hard kill

# ═══════════════════════════════════════════════════════════
#  Retry Policy
# ═══════════════════════════════════════════════════════════

task_default_retry_delay = 30
task_max_retries = 3

# ═══════════════════════════════════════════════════════════
#  Result Expiry: 24h
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
# Run a dedicated worker for callbacks:
#   celery -A phaseflow.tasks worker -Q callbacks

task_routes = {
    "phaseflow.tasks.callback_tasks.*": {"queue": settings.CALLBACK_QUEUE},
}

task_default_queue = "default"
