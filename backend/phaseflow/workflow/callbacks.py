"""
CallbackDispatcher — delivers the completion callback of a verb.

Two explicit entry points:

    run_sync   Call now; await a coroutine result; exceptions propagate.
    run_async  Schedule in the background and return immediately.
               Callbacks for the same phase run in dispatch order;
               different phases are not ordered relative to each other.
               Exceptions are logged, never re-raised.

CeleryCallbackDispatcher sends deferred callbacks to a Celery worker
instead of the local event loop.  Those callbacks must be registered by
name in a CallbackRegistry so the worker can look them up.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

import structlog

from phaseflow.workflow.errors import PhaseError
from phaseflow.workflow.phase import Phase

Callback = Callable[[bool, Phase, str], Awaitable[Any] | Any]

RUN_PHASE_CALLBACK_TASK = "phaseflow.tasks.callback_tasks.run_phase_callback"


class CallbackDispatcher:
    """In-process dispatcher backed by asyncio tasks."""

    def __init__(self) -> None:
        self._tails: dict[str, asyncio.Task] = {}
        self._pending: set[asyncio.Task] = set()
        self.logger = structlog.get_logger("workflow.callbacks")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def run_sync(
        self,
        callback: Callback | None,
        success: bool,
        phase: Phase,
        status: str,
    ) -> Any:
        """Invoke *callback* immediately and return its result."""
        if callback is None:
            return None
        self.logger.debug(
            "Running callback",
            phase_id=phase.id,
            kind=phase.kind.value,
            success=success,
        )
        result = callback(success, phase, status)
        if inspect.isawaitable(result):
            result = await result
        return result

    def run_async(
        self,
        callback: Callback | None,
        success: bool,
        phase: Phase,
        status: str,
    ) -> asyncio.Task | None:
        """
        Schedule *callback* on the running loop.

        The new task waits for the previous deferred callback of the same
        phase before it runs.
        """
        if callback is None:
            return None
        previous = self._tails.get(phase.id)
        task = asyncio.get_running_loop().create_task(
            self._run_after(previous, callback, success, phase, status),
            name=f"phase-callback-{phase.id}",
        )
        self._tails[phase.id] = task
        self._pending.add(task)
        task.add_done_callback(partial(self._finished, phase.id))
        self.logger.debug(
            "Deferred callback scheduled",
            phase_id=phase.id,
            kind=phase.kind.value,
            success=success,
            queued_behind=previous is not None,
        )
        return task

    async def drain(self) -> None:
        """Wait for every pending deferred callback to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ─── Internals ─────────────────────────────────────

    async def _run_after(
        self,
        previous: asyncio.Task | None,
        callback: Callback,
        success: bool,
        phase: Phase,
        status: str,
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self.run_sync(callback, success, phase, status)
        except Exception as exc:
            self.logger.exception(
                "Deferred callback failed",
                phase_id=phase.id,
                kind=phase.kind.value,
                error=str(exc),
            )

    def _finished(self, phase_id: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(phase_id) is task:
            del self._tails[phase_id]


# ═══════════════════════════════════════════════════════════
#  Named callbacks (for out-of-process dispatch)
# ═══════════════════════════════════════════════════════════

class CallbackRegistry:
    """
    Maps stable names to callback functions.

    Usage::

        @callback_registry.register("notify_owner")
        async def notify_owner(success, phase, status): ...
    """

    def __init__(self) -> None:
        self._by_name: dict[str, Callback] = {}

    def register(self, name: str | None = None) -> Callable[[Callback], Callback]:
        def decorator(fn: Callback) -> Callback:
            self._by_name[name or fn.__name__] = fn
            return fn

        return decorator

    def get(self, name: str) -> Callback:
        try:
            return self._by_name[name]
        except KeyError:
            raise PhaseError(f"no callback registered as {name!r}") from None

    def name_of(self, callback: Callback) -> str | None:
        for name, fn in self._by_name.items():
            if fn is callback:
                return name
        return None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


callback_registry = CallbackRegistry()


class CeleryCallbackDispatcher(CallbackDispatcher):
    """
    Dispatcher whose deferred path runs on a Celery worker.

    ``run_sync`` is inherited unchanged.  ``run_async`` sends
    ``run_phase_callback`` with the callback's registered name and the
    serialised phase, and returns the Celery AsyncResult.
    """

    def __init__(
        self,
        registry: CallbackRegistry | None = None,
        celery_app=None,
        queue: str | None = None,
    ) -> None:
        super().__init__()
        if celery_app is None:
            from phaseflow.tasks import celery_app
        from phaseflow.core.config import settings

        self.registry = registry or callback_registry
        self.celery_app = celery_app
        self.queue = queue or settings.CALLBACK_QUEUE

    def run_async(self, callback, success, phase, status):
        if callback is None:
            return None
        name = self.registry.name_of(callback)
        if name is None:
            raise PhaseError(
                f"callback {callback!r} must be registered for Celery dispatch",
                phase_id=phase.id,
                kind=phase.kind.value,
            )
        result = self.celery_app.send_task(
            RUN_PHASE_CALLBACK_TASK,
            args=[name, success, phase.to_dict(), status],
            queue=self.queue,
        )
        self.logger.info(
            "Callback sent to worker",
            phase_id=phase.id,
            callback=name,
            task_id=getattr(result, "id", None),
        )
        return result
