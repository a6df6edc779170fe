"""Tests for synchronous and asynchronous backend request execution."""

from __future__ import annotations

import asyncio

import pytest

from indexsync.backend.monitor import CountingIndexingMonitor
from indexsync.backend.processor import BackendRequestProcessor
from indexsync.backend.requests import BackendRequest
from indexsync.backend.visitor import IndexWorkVisitor
from indexsync.exceptions import AsyncProcessingError, BulkRequestError, RemoteServiceError
from indexsync.models.operations import AddOperation, DeleteOperation, OptimizeOperation, UpdateOperation


@pytest.fixture
def library(fake_service) -> IndexWorkVisitor:
    fake_service.add_index("library")
    return IndexWorkVisitor("library", refresh_after_write=True)


def _add(visitor: IndexWorkVisitor, doc_id: str, monitor=None):
    return visitor.visit(AddOperation(entity_type="book", id=doc_id, document={"n": doc_id}), monitor)


# ══════════════════════════════════════════════════════════════════════════════
# Synchronous execution
# ══════════════════════════════════════════════════════════════════════════════


class TestExecuteSync:
    async def test_operations_applied_in_order(self, processor, fake_service, library) -> None:
        requests = [
            library.visit(AddOperation(entity_type="book", id="1", document={"v": 1})),
            library.visit(UpdateOperation(entity_type="book", id="1", document={"v": 2})),
            library.visit(DeleteOperation(entity_type="book", id="1")),
        ]

        await processor.execute_sync(requests)

        assert fake_service.operations == [
            ("index", "library", "1"),
            ("index", "library", "1"),
            ("delete", "library", "1"),
        ]
        assert fake_service.indexes["library"]["docs"] == {}

    async def test_bulkable_requests_are_grouped(self, processor, fake_service, library) -> None:
        await processor.execute_sync([_add(library, str(i)) for i in range(5)])
        assert fake_service.calls("POST").count(("POST", "/_bulk")) == 1

    async def test_non_bulkable_request_splits_groups(self, processor, fake_service, library) -> None:
        await processor.execute_sync([_add(library, "1"), library.visit(OptimizeOperation()), _add(library, "2")])
        posts = [path for method, path in fake_service.requests if method == "POST"]
        assert posts == ["/_bulk", "/library/_forcemerge", "/_bulk", "/library/_refresh"]

    async def test_max_bulk_size(self, client, fake_service, library) -> None:
        processor = BackendRequestProcessor(client, max_bulk_size=2)
        await processor.execute_sync([_add(library, str(i)) for i in range(5)])
        assert fake_service.calls("POST").count(("POST", "/_bulk")) == 3

    async def test_refresh_makes_writes_visible(self, processor, fake_service, library) -> None:
        await processor.execute_sync([_add(library, "1")])
        assert ("book", "1") in fake_service.indexes["library"]["visible"]

    async def test_no_refresh_when_disabled(self, processor, fake_service) -> None:
        fake_service.add_index("library")
        visitor = IndexWorkVisitor("library", refresh_after_write=False)
        await processor.execute_sync([_add(visitor, "1")])
        assert ("POST", "/library/_refresh") not in fake_service.requests

    async def test_delete_of_missing_document_succeeds(self, processor, library) -> None:
        await processor.execute_sync([library.visit(DeleteOperation(entity_type="book", id="404"))])

    async def test_rejected_item_raises_bulk_error(self, processor, fake_service, library) -> None:
        fake_service.rejected_ids = {"2"}
        monitor = CountingIndexingMonitor()

        with pytest.raises(BulkRequestError) as exc_info:
            await processor.execute_sync([_add(library, str(i), monitor) for i in range(3)])

        assert len(exc_info.value.failures) == 1
        assert exc_info.value.failures[0]["status"] == 400
        assert monitor.produced == 3
        assert monitor.failed == 1

    async def test_single_request_failure_is_raised_as_is(self, processor) -> None:
        request = BackendRequest(index_name="missing", method="GET", path="/missing/_mapping")
        with pytest.raises(RemoteServiceError) as exc_info:
            await processor.execute_sync([request])
        assert exc_info.value.status_code == 404

    async def test_none_requests_are_skipped(self, processor, fake_service) -> None:
        await processor.execute_sync([None, None])
        assert fake_service.requests == []


# ══════════════════════════════════════════════════════════════════════════════
# Asynchronous execution
# ══════════════════════════════════════════════════════════════════════════════


class TestExecuteAsync:
    async def test_flush_waits_for_all_submitted_work(self, processor, fake_service, library) -> None:
        fake_service.bulk_delay = 0.01
        for i in range(20):
            await processor.execute_async(_add(library, str(i)))

        await processor.await_async_processing_completion("library")

        assert processor.pending_count("library") == 0
        assert len(fake_service.indexes["library"]["visible"]) == 20

    async def test_future_completes_when_acknowledged(self, processor, library) -> None:
        future = await processor.execute_async(_add(library, "1"))
        await asyncio.wait_for(future, timeout=5)
        assert future.result() is None

    async def test_failures_are_raised_on_flush(self, processor, fake_service, library) -> None:
        fake_service.rejected_ids = {"3"}
        monitor = CountingIndexingMonitor()
        for i in range(5):
            await processor.execute_async(_add(library, str(i), monitor))

        with pytest.raises(AsyncProcessingError) as exc_info:
            await processor.await_async_processing_completion("library")

        assert len(exc_info.value.errors) == 1
        assert monitor.failed == 1
        assert len(fake_service.indexes["library"]["docs"]) == 4

    async def test_failures_are_reported_once(self, processor, fake_service, library) -> None:
        fake_service.rejected_ids = {"1"}
        await processor.execute_async(_add(library, "1"))
        with pytest.raises(AsyncProcessingError):
            await processor.await_async_processing_completion("library")
        await processor.await_async_processing_completion("library")

    async def test_failures_are_scoped_per_index(self, processor, fake_service, library) -> None:
        fake_service.add_index("archive")
        archive = IndexWorkVisitor("archive")
        fake_service.rejected_ids = {"bad"}
        await processor.execute_async(_add(archive, "bad"))
        await processor.execute_async(_add(library, "good"))

        await processor.await_async_processing_completion("library")
        with pytest.raises(AsyncProcessingError) as exc_info:
            await processor.await_async_processing_completion("archive")
        assert exc_info.value.index_name == "archive"

    async def test_same_request_submitted_twice(self, processor, fake_service, library) -> None:
        request = _add(library, "1")
        first = await processor.execute_async(request)
        second = await processor.execute_async(request)

        await asyncio.wait_for(processor.await_async_processing_completion("library"), timeout=5)

        assert first.done() and second.done()
        assert fake_service.operations == [("index", "library", "1"), ("index", "library", "1")]

    async def test_flush_without_pending_work(self, processor) -> None:
        await processor.await_async_processing_completion()
        assert processor.pending_count() == 0


# ══════════════════════════════════════════════════════════════════════════════
# Reference counting
# ══════════════════════════════════════════════════════════════════════════════


class TestReferenceCounting:
    async def test_last_release_drains_the_queue(self, processor, fake_service, library) -> None:
        processor.acquire()
        processor.acquire()
        await processor.execute_async(_add(library, "1"))

        await processor.release()
        assert processor.refcount == 1

        await processor.release()
        assert processor.refcount == 0
        assert ("book", "1") in fake_service.indexes["library"]["docs"]

    async def test_release_without_acquire(self, processor) -> None:
        with pytest.raises(RuntimeError):
            await processor.release()

    async def test_workers_restart_after_shutdown(self, processor, fake_service, library) -> None:
        await processor.execute_async(_add(library, "1"))
        await processor.shutdown()
        await processor.execute_async(_add(library, "2"))
        await processor.await_async_processing_completion()
        assert len(fake_service.indexes["library"]["docs"]) == 2
