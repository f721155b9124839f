"""Tests for the per-kind verb handlers, driven through PhaseAction."""

import pytest

from phaseflow.core.constants import Command, Condition, PhaseKind
from phaseflow.workflow import BulkAction, HandlerRegistry
from phaseflow.workflow.errors import ConstructionError, StateTableError
from phaseflow.workflow.handlers import PhaseHandler, StoreHandler
from phaseflow.workflow.phase import Phase
from phaseflow.workflow.state_table import DEFAULT_STATE_TABLES


class TestPhaseHandlerBase:

    def test_sequence_pairs_states_with_work(self):
        handler = StoreHandler(storage=None)
        assert handler.sequence("promote", print, True) == {"promoting": print, "completed": True}

    def test_sequence_count_mismatch(self):
        with pytest.raises(ValueError, match="2 states but 1 work"):
            StoreHandler(storage=None).sequence("upload", True)

    def test_submission_ids(self):
        targets = [7, "u1a2b3c4d", {"submission_id": "u5t4s3r2q"}, Phase(kind="store", submission_id="u9z8y7x6w")]
        assert PhaseHandler.submission_ids(targets) == ["7", "u1a2b3c4d", "u5t4s3r2q", "u9z8y7x6w"]

    def test_batch_size_defaults_from_settings(self):
        assert StoreHandler(storage=None).batch_size == 100


class TestHandlerRegistry:

    def test_every_kind_registered(self, handlers):
        assert set(handlers.kinds()) == set(PhaseKind)

    def test_unknown_kind(self):
        with pytest.raises(ConstructionError, match="no handler"):
            HandlerRegistry().get(PhaseKind.STORE)

    def test_validate_against_tables(self, handlers):
        handlers.validate(DEFAULT_STATE_TABLES)

    def test_validate_detects_undeclared_state(self, storage):
        class Broken(StoreHandler):
            transitions = {"upload": ("uploading", "vanished")}

        registry = HandlerRegistry([Broken(storage)])
        with pytest.raises(StateTableError, match="vanished"):
            registry.validate(DEFAULT_STATE_TABLES)


class TestStoreHandler:

    @pytest.mark.asyncio
    async def test_upload_records_file_data(self, make_action):
        action = make_action("store")
        await action.upload(b"12345", filename="book.epub")
        assert action.phase.file_data == {
            "filename": "book.epub",
            "cache_key": "u1a2b3c4d/book.epub",
            "size": 5,
        }

    @pytest.mark.asyncio
    async def test_upload_requires_submission_id(self, make_action):
        action = make_action("store", submission_id=None)
        assert await action.upload(b"x") is False
        assert action.phase.note == "upload: no submission id"

    @pytest.mark.asyncio
    async def test_promote_sets_store_key(self, make_action, storage):
        action = make_action("store")
        await action.upload(b"x", filename="f.pdf")
        assert await action.promote() is True
        assert action.phase.file_data["store_key"] == "u1a2b3c4d/f.pdf"
        assert storage.store == {"u1a2b3c4d/f.pdf": b"x"}

    @pytest.mark.asyncio
    async def test_promote_without_upload(self, make_action):
        action = make_action("store", state="uploaded")
        assert await action.promote() is False
        assert action.phase.note == "promote: no uploaded file"
        assert action.state == "uploaded"

    @pytest.mark.asyncio
    async def test_cleanup_deletes_unpromoted_upload(self, make_action, storage):
        storage.fail.add("promote")
        action = make_action("store")
        await action.upload(b"x", filename="f.pdf")
        await action.promote()

        result = await action.cleanup()
        assert result.succeeded
        assert result.released == ["u1a2b3c4d/f.pdf"]
        assert storage.cache == {}

    @pytest.mark.asyncio
    async def test_cleanup_keeps_completed_files(self, make_action, storage):
        action = make_action("store")
        await action.upload(b"x", filename="f.pdf")
        await action.promote()

        result = await action.cleanup()
        assert result.released == []
        assert storage.called("delete") == []

    @pytest.mark.asyncio
    async def test_cleanup_failure_is_reported(self, make_action, storage):
        action = make_action("store")
        await action.upload(b"x", filename="f.pdf")
        storage.fail.add("delete")

        result = await action.cleanup()
        assert not result
        assert result.errors == ["delete rejected"]

    @pytest.mark.asyncio
    async def test_upload_tags_object_with_submission_id(self, make_action, storage):
        action = make_action("store")
        await action.upload(b"x", filename="f.pdf")
        (_args, kwargs), = storage.called("upload")
        assert kwargs["metadata"] == {"submission-id": "u1a2b3c4d"}

    @pytest.mark.asyncio
    async def test_cleanup_deletes_in_batches(self, make_action, storage):
        sids = [f"u{n:08d}" for n in range(1200)]
        action = make_action(
            "batch_store",
            targets=sids,
            state="aborted",
            file_data={"cache_keys": {sid: f"{sid}/f.pdf" for sid in sids}},
        )

        result = await action.cleanup()

        assert result.succeeded
        assert len(result.released) == 1200
        assert [len(args[0]) for args, _ in storage.called("delete")] == [500, 500, 200]

    @pytest.mark.asyncio
    async def test_cleanup_skips_promoted_bulk_files(self, make_action, storage):
        action = make_action(
            "batch_store",
            targets=["u1a2b3c4d", "u9z8y7x6w"],
            state="aborted",
            file_data={
                "cache_keys": {"u1a2b3c4d": "u1a2b3c4d/a.pdf", "u9z8y7x6w": "u9z8y7x6w/b.pdf"},
                "store_keys": {"u1a2b3c4d": "u1a2b3c4d/a.pdf"},
            },
        )

        result = await action.cleanup()

        assert result.released == ["u9z8y7x6w/b.pdf"]

    @pytest.mark.asyncio
    async def test_cancel_before_upload(self, make_action):
        action = make_action("store")
        assert await action.cancel() is True
        assert action.state == "canceled"


class TestIndexHandler:

    @pytest.mark.asyncio
    async def test_index_sends_record(self, make_action, index):
        action = make_action(
            "index",
            repository="emma",
            emma_data={"dc_title": "A Book"},
            file_data={"store_key": "u1a2b3c4d/f.pdf"},
        )
        assert await action.index() is True
        assert action.state == "indexed"
        assert index.records["u1a2b3c4d"] == {
            "dc_title": "A Book",
            "submission_id": "u1a2b3c4d",
            "repository": "emma",
            "file_key": "u1a2b3c4d/f.pdf",
        }

    @pytest.mark.asyncio
    async def test_index_failure(self, make_action, index):
        index.fail.add("put_records")
        action = make_action("index")
        assert await action.index() is False
        assert action.state == "aborted"


class TestQueueHandler:

    @pytest.mark.asyncio
    async def test_submit_to_member_repository(self, make_action, repository):
        action = make_action("queue", repository="ace", file_data={"store_key": "k"})
        assert await action.submit() is True
        assert action.state == "unretrieved"
        (repo, items), _ = repository.called("enqueue")[0]
        assert repo == "ace"
        assert items == [{"submission_id": "u1a2b3c4d", "file_key": "k", "metadata": {}}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("repo, note", [
        (None, "submit: no repository"),
        ("emma", "submit: 'emma' items are indexed directly, not queued"),
    ])
    async def test_submit_requires_member_repository(self, make_action, repo, note):
        action = make_action("queue", repository=repo)
        assert await action.submit() is False
        assert action.state == "started"
        assert action.phase.note == note

    @pytest.mark.asyncio
    async def test_confirm_retrieval(self, make_action, repository):
        action = make_action("queue", repository="ace")
        await action.submit()
        repository.retrieved.add("u1a2b3c4d")

        assert await action.confirm_retrieval() is True
        assert action.state == "retrieved"
        assert action.describe_status() == "retrieved by ACE"

    @pytest.mark.asyncio
    async def test_confirm_retrieval_pending_requests_retry(self, make_action):
        action = make_action("queue", repository="ace")
        await action.submit()

        assert await action.confirm_retrieval() is False
        assert action.state == "unretrieved"
        assert action.phase.command == Command.RETRY
        assert action.phase.condition == Condition.FAILED


class TestRemovalHandlers:

    @pytest.mark.asyncio
    async def test_unsubmit(self, make_action, repository):
        repository.queues["ace"] = ["u1a2b3c4d", "u9z8y7x6w"]
        action = make_action("unqueue", repository="ace")
        assert await action.unsubmit() is True
        assert action.state == "completed"
        assert repository.queues["ace"] == ["u9z8y7x6w"]

    @pytest.mark.asyncio
    async def test_unsubmit_requires_repository(self, make_action):
        action = make_action("unqueue")
        assert await action.unsubmit() is False
        assert action.phase.note == "unsubmit: no repository"

    @pytest.mark.asyncio
    async def test_unstore_uses_store_key(self, make_action, storage):
        storage.store["u1a2b3c4d/f.pdf"] = b"x"
        action = make_action("unstore", file_data={"store_key": "u1a2b3c4d/f.pdf"})
        assert await action.unstore() is True
        assert storage.store == {}

    @pytest.mark.asyncio
    async def test_unstore_without_file(self, make_action):
        action = make_action("unstore")
        assert await action.unstore() is False
        assert action.phase.note == "unstore: no stored file"

    @pytest.mark.asyncio
    async def test_deindex(self, make_action, index):
        index.records["u1a2b3c4d"] = {"submission_id": "u1a2b3c4d"}
        action = make_action("unindex")
        assert await action.deindex() is True
        assert index.records == {}

    @pytest.mark.asyncio
    async def test_unrecord_removes_phases(self, make_action, phase_store):
        await phase_store.save(Phase(kind="store", submission_id="u1a2b3c4d"))
        await phase_store.save(Phase(kind="store", submission_id="u9z8y7x6w"))
        action = make_action("unrecord")

        assert await action.unrecord() is True
        assert await phase_store.list_for_submission("u1a2b3c4d") == []
        assert len(phase_store) == 1

    @pytest.mark.asyncio
    async def test_batch_deindex(self, handlers, index):
        for sid in ("u1a2b3c4d", "u9z8y7x6w", "u5t4s3r2q"):
            index.records[sid] = {"submission_id": sid}
        action = BulkAction.create("batch_unindex", ["u1a2b3c4d", "u9z8y7x6w", "u5t4s3r2q"], handlers=handlers)

        assert await action.deindex() is True
        assert index.records == {}
        assert len(index.called("delete_records")) == 2

    @pytest.mark.asyncio
    async def test_batch_unstore_takes_keys(self, handlers, storage):
        storage.store.update({"a/1.pdf": b"1", "b/2.pdf": b"2"})
        action = BulkAction.create("batch_unstore", ["a/1.pdf", {"store_key": "b/2.pdf"}], handlers=handlers)

        assert await action.unstore() is True
        assert storage.store == {}


class TestReviewHandler:

    @pytest.mark.asyncio
    async def test_full_review_approved(self, make_action, review):
        action = make_action("review", user="owner")
        assert await action.schedule() is True
        assert await action.assign("reviewer-1") is True
        assert action.describe_status() == "has been submitted for review"
        assert await action.review() is True
        assert await action.approve(remarks="looks good") is True

        assert action.state == "approved"
        assert action.phase.remarks == "looks good"
        assert review.decisions == {"u1a2b3c4d": True}
        assert review.called("schedule") == [(("u1a2b3c4d",), {"requested_by": "owner"})]

    @pytest.mark.asyncio
    async def test_assign_requires_reviewer(self, make_action):
        action = make_action("review", state="scheduling")
        assert await action.assign() is False
        assert action.phase.note == "assign: no reviewer"
        assert action.state == "scheduling"

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, make_action, review):
        action = make_action("review", state="reviewing")
        assert await action.reject() is False
        assert action.phase.note == "reject: no reason for rejection"

        action.phase.note = None
        assert await action.reject(remarks="missing pages") is True
        assert action.state == "rejected"
        assert review.decisions == {"u1a2b3c4d": False}

    @pytest.mark.asyncio
    async def test_cancel_open_review(self, make_action, review):
        action = make_action("review", state="assigned")
        assert await action.cancel() is True
        assert action.state == "canceled"
        assert action.describe_status() == "canceled after being submitted for review"
        assert review.called("cancel") == [(("u1a2b3c4d",), {})]

    @pytest.mark.asyncio
    async def test_schedule_phase(self, make_action):
        action = make_action("schedule")
        assert await action.schedule() is True
        assert action.state == "scheduled"
        assert action.describe_status() == "review scheduled for u1a2b3c4d"
