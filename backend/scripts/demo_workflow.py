#!/usr/bin/env python3
"""
Demo script — run the phase engine locally without S3, HTTP services or Celery.

Collaborators are replaced by in-process loopbacks that always succeed
(or fail on request), and phases are kept in a MemoryPhaseStore.

Usage:
    cd backend
    python -m scripts.demo_workflow
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Loopback:
    """Answers every collaborator call with a successful ActionOutcome."""

    def __init__(self, fail: set[str] | None = None):
        self.fail = fail or set()
        self.calls: list[str] = []

    def __getattr__(self, name):
        from phaseflow.workflow.phase import ActionOutcome

        async def call(*args, **kwargs):
            self.calls.append(name)
            if name in self.fail:
                return ActionOutcome.fail(f"{name} rejected by loopback")
            if name == "is_retrieved":
                return ActionOutcome.ok(retrieved=list(args[1]))
            return ActionOutcome.ok()

        return call


def _registry(loopback, store):
    from phaseflow.workflow.registry import build_handler_registry

    return build_handler_registry(
        storage=loopback,
        index=loopback,
        repository=loopback,
        review=loopback,
        records=store,
    )


async def run_native_submission():
    """DEMO 1: upload -> promote -> index for the native repository."""
    from phaseflow.persistence import MemoryPhaseStore
    from phaseflow.workflow import SubmissionWorkflow

    print("\n" + "=" * 70)
    print("  DEMO 1: Native submission (store + index)")
    print("=" * 70)

    store = MemoryPhaseStore()
    workflow = SubmissionWorkflow(store, handlers=_registry(Loopback(), store), retry_backoff=0)
    result = await workflow.create(
        "u1a2b3c4d", b"%PDF-1.7 demo", filename="book.pdf",
        emma_data={"dc_title": "Demo Book"},
        callback=_print_callback,
    )
    _print_result(result)


async def run_member_submission_with_retry():
    """DEMO 2: upload keeps failing; the workflow retries, then cleans up."""
    from phaseflow.persistence import MemoryPhaseStore
    from phaseflow.workflow import SubmissionWorkflow

    print("\n" + "=" * 70)
    print("  DEMO 2: Member repository submission with failing upload")
    print("=" * 70)

    store = MemoryPhaseStore()
    workflow = SubmissionWorkflow(
        store, handlers=_registry(Loopback(fail={"upload"}), store),
        max_retries=2, retry_backoff=0,
    )
    result = await workflow.create(
        "u9z8y7x6w", b"demo", filename="book.epub", repository="ace",
        callback=_print_callback,
    )
    _print_result(result)


async def run_bulk_queue():
    """DEMO 3: one bulk phase queues three items."""
    from phaseflow.persistence import MemoryPhaseStore
    from phaseflow.workflow import SubmissionWorkflow

    print("\n" + "=" * 70)
    print("  DEMO 3: Bulk submission of three items")
    print("=" * 70)

    store = MemoryPhaseStore()
    workflow = SubmissionWorkflow(store, handlers=_registry(Loopback(), store), retry_backoff=0)
    phase = await workflow.run_bulk(
        "batch_queue", "submit", [7, 9, 12],
        fields={"repository": "internetArchive"},
        callback=_print_callback,
    )
    print(f"\n  Final state : {phase.state}")


async def _print_callback(success, phase, status):
    icon = "✓" if success else "✗"
    print(f"    {icon} {phase.kind.value:<12} {phase.state:<12} {status}")


def _print_result(result):
    """Pretty-print a SubmissionResult."""
    print(f"\n{'─' * 50}")
    print(f"  Submission : {result.submission_id}")
    print(f"  Succeeded  : {result.succeeded}")
    for phase in result.phases:
        print(f"    - {phase.kind.value:<8} state={phase.state:<12} condition={phase.condition} retries={phase.retries}")
        if phase.note:
            print(f"        note: {phase.note}")
    if result.cleanup is not None:
        print(f"  Cleanup    : succeeded={result.cleanup.succeeded} released={result.cleanup.released}")
    print(f"{'─' * 50}\n")


async def main():
    from phaseflow.core.logging import setup_logging
    setup_logging("WARNING")     # quiet logs, show formatted output only

    print("\n╔" + "═" * 68 + "╗")
    print("║               PHASEFLOW — PHASE ENGINE DEMO                        ║")
    print("╚" + "═" * 68 + "╝")

    await run_native_submission()
    await run_member_submission_with_retry()
    await run_bulk_queue()

    print("\n✅ All demos completed.\n")


if __name__ == "__main__":
    asyncio.run(main())
