"""Tests for BulkAction, describe_targets and chunked."""

from types import SimpleNamespace

import pytest

from phaseflow.core.constants import Command, Condition, PhaseKind
from phaseflow.workflow import BulkAction, Phase, chunked, describe_targets
from phaseflow.workflow.errors import ConstructionError
from phaseflow.workflow.phase import ActionOutcome


class TestConstruction:

    def test_create(self, handlers):
        action = BulkAction.create("batch_queue", [7, 9, 12], handlers=handlers, repository="ace")
        assert action.kind == PhaseKind.BATCH_QUEUE
        assert action.targets == (7, 9, 12)
        assert action.work_argument == (7, 9, 12)
        assert action.phase.repository == "ace"

    def test_empty_targets_rejected(self, handlers):
        with pytest.raises(ConstructionError, match="at least one target"):
            BulkAction.create("batch_queue", [], handlers=handlers)

    def test_empty_phase_targets_rejected(self, handlers):
        with pytest.raises(ConstructionError):
            BulkAction(Phase(kind="batch_index"), handlers=handlers)

    def test_single_kind_rejected(self, handlers):
        with pytest.raises(ConstructionError, match="cannot drive"):
            BulkAction(Phase(kind="queue", targets=[1]), handlers=handlers)


class TestBulkVerbs:

    @pytest.mark.asyncio
    async def test_submit_three_ids(self, handlers, dispatcher, repository, callback):
        action = BulkAction.create(
            "batch_queue", [7, 9, 12],
            handlers=handlers, dispatcher=dispatcher, repository="ace",
        )
        assert action.describe_targets() == "ids 7, 9, 12"

        ok = await action.submit(callback=callback)

        assert ok is True
        assert action.state == "unretrieved"
        assert action.phase.condition == Condition.SUCCEEDED
        assert repository.queues["ace"] == ["7", "9", "12"]
        # batch_size=2 in the fixture registry
        assert len(repository.called("enqueue")) == 2
        assert callback.calls == [(True, "unretrieved", "waiting for ACE to retrieve ids 7, 9, 12")]

    @pytest.mark.asyncio
    async def test_partial_failure_fails_whole_entry(self, handlers, index):
        calls = {"n": 0}
        original = index.put_records

        async def flaky(records):
            calls["n"] += 1
            if calls["n"] == 2:
                return ActionOutcome.fail("index offline")
            return await original(records)

        index.put_records = flaky
        action = BulkAction.create("batch_index", [1, 2, 3, 4], handlers=handlers)

        assert await action.index() is False
        assert action.state == "aborted"
        assert action.phase.note == "index: failed for ids 3, 4; index offline"

    @pytest.mark.asyncio
    async def test_exception_in_batch_fails_entry(self, handlers, repository):
        repository.raise_on.add("enqueue")
        action = BulkAction.create("batch_queue", ["u1a2b3c4d"], handlers=handlers, repository="ace")

        assert await action.submit() is False
        assert action.phase.note == "submit: failed for sids u1a2b3c4d; enqueue exploded"

    @pytest.mark.asyncio
    async def test_bulk_upload_and_promote(self, handlers, storage):
        files = {7: ("a.pdf", b"A"), "u9z8y7x6w": ("b.pdf", b"B")}
        action = BulkAction.create("batch_store", [7, "u9z8y7x6w"], handlers=handlers)

        assert await action.upload(files=files) is True
        assert action.phase.file_data["cache_keys"] == {"7": "7/a.pdf", "u9z8y7x6w": "u9z8y7x6w/b.pdf"}

        assert await action.promote() is True
        assert action.state == "completed"
        assert set(storage.store) == {"7/a.pdf", "u9z8y7x6w/b.pdf"}

    @pytest.mark.asyncio
    async def test_record_targets_upload_by_submission_id(self, handlers, storage):
        targets = [{"submission_id": "u1a2b3c4d"}, {"submission_id": "u9z8y7x6w"}]
        files = {"u1a2b3c4d": ("a.pdf", b"A"), "u9z8y7x6w": ("b.pdf", b"B")}
        action = BulkAction.create("batch_store", targets, handlers=handlers)

        assert await action.upload(files=files) is True
        assert action.describe_targets() == "sids u1a2b3c4d, u9z8y7x6w"

        assert await action.promote() is True
        assert action.phase.file_data["store_keys"] == {"u1a2b3c4d": "u1a2b3c4d/a.pdf", "u9z8y7x6w": "u9z8y7x6w/b.pdf"}
        assert set(storage.store) == {"u1a2b3c4d/a.pdf", "u9z8y7x6w/b.pdf"}

    @pytest.mark.asyncio
    async def test_retryable_batch_failure_is_reported(self, handlers, index):
        async def unavailable(records):
            return ActionOutcome.fail("index returned 503", retryable=True)

        index.put_records = unavailable
        action = BulkAction.create("batch_index", [1, 2, 3], handlers=handlers)

        assert await action.index(auto_retry=True) is False
        assert action.state == "started"
        assert action.phase.command == Command.RETRY

    @pytest.mark.asyncio
    async def test_bulk_upload_missing_file(self, handlers):
        action = BulkAction.create("batch_store", [7, 8], handlers=handlers)
        assert await action.upload(files={7: ("a.pdf", b"A")}) is False
        assert "8: no file" in action.phase.note

    def test_describe_status_for_bulk(self, handlers):
        action = BulkAction.create("batch_unindex", [7, "u1a2b3c4d"], handlers=handlers)
        assert action.describe_status() == "removing index entries for 1 ids: 7; 1 sids: u1a2b3c4d"


class TestDescribeTargets:

    def test_empty(self):
        assert describe_targets([]) == ""

    def test_single_class(self):
        assert describe_targets([7, 9, 12]) == "ids 7, 9, 12"
        assert describe_targets(["u1a2b3c4d", "u9z8y7x6w"]) == "sids u1a2b3c4d, u9z8y7x6w"

    def test_mixed_classes_in_fixed_order(self):
        targets = ["misc", "u1a2b3c4d", 7]
        assert describe_targets(targets) == "1 ids: 7; 1 sids: u1a2b3c4d; 1 items: misc"

    def test_records(self):
        record = SimpleNamespace(submission_id="u5t4s3r2q")
        row = SimpleNamespace(id=42)
        assert describe_targets([record, row]) == "1 ids: 42; 1 sids: u5t4s3r2q"

    def test_mapping_records(self):
        targets = [{"submission_id": "u5t4s3r2q"}, {"id": 42}]
        assert describe_targets(targets) == "1 ids: 42; 1 sids: u5t4s3r2q"

    def test_numeric_strings_are_ids(self):
        assert describe_targets(["7", "9"]) == "ids 7, 9"


class TestChunked:

    def test_partitions_in_order(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [(1, 2), (3, 4), (5,)]

    def test_empty(self):
        assert list(chunked([], 3)) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))
