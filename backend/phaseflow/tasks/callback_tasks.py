"""
Celery tasks — deferred phase callbacks.

CeleryCallbackDispatcher sends ``run_phase_callback`` with the name of a
callback registered in ``callback_registry`` and the serialised phase.
The worker process must import the modules that register its callbacks
(e.g. via ``CELERY_IMPORTS`` or the worker's ``-I`` option).
"""

import asyncio
import inspect

import structlog

from phaseflow.tasks import celery_app
from phaseflow.workflow.callbacks import RUN_PHASE_CALLBACK_TASK, callback_registry
from phaseflow.workflow.phase import Phase

logger = structlog.get_logger("tasks.callbacks")


@celery_app.task(bind=True, name=RUN_PHASE_CALLBACK_TASK)
def run_phase_callback(
    self,
    callback_name: str,
    success: bool,
    phase_data: dict,
    status: str,
):
    """
    Rebuild the phase and invoke the named callback.

    Coroutine callbacks are driven to completion with asyncio.run().
    """
    phase = Phase.from_dict(phase_data)
    task_log = logger.bind(
        task_id=self.request.id,
        callback=callback_name,
        phase_id=phase.id,
        kind=phase.kind.value,
    )
    task_log.info("Running phase callback", success=success)

    callback = callback_registry.get(callback_name)
    result = callback(success, phase, status)
    if inspect.isawaitable(result):
        result = asyncio.run(_await(result))

    task_log.info("Phase callback finished")
    return {
        "callback": callback_name,
        "phase_id": phase.id,
        "success": success,
        "result": result if isinstance(result, (str, int, float, bool, dict, list)) else None,
    }


async def _await(awaitable):
    return await awaitable
