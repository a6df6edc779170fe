"""Backend request processor — Executes backend requests synchronously or asynchronously.

Two execution modes:
  - **Synchronous** (``execute_sync``) — Sends a batch in order and returns
    once every request completed, raising on the first failure.
  - **Asynchronous** (``execute_async``) — Queues one request and returns at
    once.  Worker tasks drain the queue in batches; failures are recorded
    per index and raised by the next ``await_async_processing_completion()``.

In both modes consecutive bulkable requests are grouped into ``_bulk`` calls,
and indexes whose requests ask for it are refreshed after each batch so the
writes are immediately searchable.

The processor is shared by every index manager of a process and reference
counted through ``acquire()``/``release()``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from indexsync.backend.requests import BackendRequest
from indexsync.exceptions import AsyncProcessingError, BulkRequestError, RemoteServiceError

if TYPE_CHECKING:
    from indexsync.client.client import SearchServiceClient
    from indexsync.config.settings import ProcessorSettings

logger = logging.getLogger(__name__)

_QueueItem = tuple[BackendRequest, "asyncio.Future[None]"]
_T = TypeVar("_T")


class BackendRequestProcessor:
    """Executes backend requests against the search service.

    Args:
        client: Transport to the search service.
        workers: Number of worker tasks draining the async queue.
        max_bulk_size: Maximum number of requests per bulk call.
        queue_size: Capacity of the async queue (0 = unbounded).
    """

    def __init__(
        self,
        client: SearchServiceClient,
        *,
        workers: int = 2,
        max_bulk_size: int = 250,
        queue_size: int = 1000,
    ) -> None:
        self._client = client
        self._worker_count = workers
        self._max_bulk_size = max_bulk_size
        self._queue_size = queue_size

        self._queue: asyncio.Queue[_QueueItem] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self._pending: dict[str, set[asyncio.Future[None]]] = defaultdict(set)
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self._refcount = 0

    @classmethod
    def from_settings(cls, client: SearchServiceClient, settings: ProcessorSettings) -> BackendRequestProcessor:
        return cls(
            client,
            workers=settings.workers,
            max_bulk_size=settings.max_bulk_size,
            queue_size=settings.queue_size,
        )

    # ──────────────────────────────────────────────────────────────────────
    # Reference counting
    # ──────────────────────────────────────────────────────────────────────

    def acquire(self) -> BackendRequestProcessor:
        """Register one more user of the processor."""
        self._refcount += 1
        return self

    async def release(self) -> None:
        """Unregister a user; the last release drains the queue and stops the workers."""
        if self._refcount == 0:
            raise RuntimeError("BackendRequestProcessor released more often than acquired")
        self._refcount -= 1
        if self._refcount == 0:
            await self.shutdown()

    @property
    def refcount(self) -> int:
        return self._refcount

    async def shutdown(self) -> None:
        """Wait for queued work to finish, then stop the worker tasks."""
        if self._queue is not None:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queue = None
        logger.info("Backend request processor shut down")

    # ──────────────────────────────────────────────────────────────────────
    # Synchronous execution
    # ──────────────────────────────────────────────────────────────────────

    async def execute_sync(self, requests: Iterable[BackendRequest | None]) -> None:
        """Execute a batch in order and wait for it to complete.

        Raises:
            BulkRequestError: If items of a bulk call were rejected.
            RemoteServiceError / TransportError: If a request failed.
        """
        batch = [r for r in requests if r is not None]
        if not batch:
            return
        for group in self._partition(batch, key=lambda request: request):
            errors = await self._execute_group(group)
            failed = [(r, e) for r, e in zip(group, errors, strict=True) if e is not None]
            if failed:
                for request, error in failed:
                    _notify_failure(request, error)
                first = failed[0][1]
                # A failure of the whole call is raised as is.
                if not isinstance(first, BulkRequestError) and all(e is first for _, e in failed):
                    raise first
                raise BulkRequestError([_failure_details(r, e) for r, e in failed])
        await self._refresh(batch)

    # ──────────────────────────────────────────────────────────────────────
    # Asynchronous execution
    # ──────────────────────────────────────────────────────────────────────

    async def execute_async(self, request: BackendRequest) -> asyncio.Future[None]:
        """Queue a request and return without waiting for it.

        Returns:
            A future completed once the request was acknowledged by the service.
            Failures are also recorded and raised by the next
            ``await_async_processing_completion()`` for the index.
        """
        queue = self._ensure_workers()
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        pending = self._pending[request.index_name]
        pending.add(future)
        future.add_done_callback(lambda f: _forget(pending, f))
        await queue.put((request, future))
        return future

    async def await_async_processing_completion(self, index_name: str | None = None) -> None:
        """Wait until every previously queued request (of one index, or all) completed.

        Raises:
            AsyncProcessingError: With every failure recorded since the last call.
        """
        if index_name is None:
            futures = [f for pending in self._pending.values() for f in pending]
        else:
            futures = list(self._pending.get(index_name, ()))
        if futures:
            logger.debug("Waiting for %d asynchronous request(s) to complete", len(futures))
            await asyncio.wait(futures)

        if index_name is None:
            errors = [e for errs in self._failures.values() for e in errs]
            self._failures.clear()
        else:
            errors = self._failures.pop(index_name, [])
            if not self._pending.get(index_name):
                self._pending.pop(index_name, None)
        if errors:
            raise AsyncProcessingError(index_name, errors)

    def pending_count(self, index_name: str | None = None) -> int:
        if index_name is None:
            return sum(len(p) for p in self._pending.values())
        return len(self._pending.get(index_name, ()))

    def _ensure_workers(self) -> asyncio.Queue[_QueueItem]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._queue_size)
        if not self._workers:
            self._workers = [
                asyncio.create_task(self._worker(self._queue), name=f"indexsync-worker-{i}")
                for i in range(self._worker_count)
            ]
            logger.info("Started %d backend worker task(s)", self._worker_count)
        return self._queue

    async def _worker(self, queue: asyncio.Queue[_QueueItem]) -> None:
        while True:
            items = [await queue.get()]
            while len(items) < self._max_bulk_size and not queue.empty():
                items.append(queue.get_nowait())
            try:
                await self._execute_async_batch(items)
            except Exception as e:  # keep the worker alive, fail the whole batch
                logger.error("Asynchronous batch of %d request(s) failed: %s", len(items), e, exc_info=True)
                for request, future in items:
                    self._fail(request, future, e)
            finally:
                for _ in items:
                    queue.task_done()

    async def _execute_async_batch(self, items: list[_QueueItem]) -> None:
        succeeded: list[_QueueItem] = []
        for group in self._partition(items, key=lambda item: item[0]):
            errors = await self._execute_group([request for request, _ in group])
            for (request, future), error in zip(group, errors, strict=True):
                if error is None:
                    succeeded.append((request, future))
                else:
                    self._fail(request, future, error)

        try:
            await self._refresh(request for request, _ in succeeded)
        except Exception as e:
            for request, future in succeeded:
                self._fail(request, future, e)
            return

        for _, future in succeeded:
            if not future.done():
                future.set_result(None)

    def _fail(self, request: BackendRequest, future: asyncio.Future[None], error: BaseException) -> None:
        if future.done():
            return
        self._failures[request.index_name].append(error)
        _notify_failure(request, error)
        future.set_exception(error)

    # ──────────────────────────────────────────────────────────────────────
    # Shared internals
    # ──────────────────────────────────────────────────────────────────────

    def _partition(self, items: Sequence[_T], key: Callable[[_T], BackendRequest]) -> list[list[_T]]:
        """Split into groups of consecutive bulkable requests, others alone, order kept."""
        groups: list[list[_T]] = []
        current: list[_T] = []
        for item in items:
            if key(item).bulkable:
                current.append(item)
                if len(current) >= self._max_bulk_size:
                    groups.append(current)
                    current = []
                continue
            if current:
                groups.append(current)
                current = []
            groups.append([item])
        if current:
            groups.append(current)
        return groups

    async def _execute_group(self, group: list[BackendRequest]) -> list[BaseException | None]:
        """Execute one group; returns one error (or None) per request.

        A transport failure of a bulk call fails every request of the group.
        """
        if len(group) == 1 and not group[0].bulkable:
            request = group[0]
            try:
                await self._client.request(
                    request.method,
                    request.path,
                    params=request.params,
                    body=request.body,
                    ignore=request.ignored_statuses,
                )
            except Exception as e:
                return [e]
            return [None]

        try:
            return await self._execute_bulk(group)
        except Exception as e:
            return [e] * len(group)

    async def _execute_bulk(self, group: list[BackendRequest]) -> list[BaseException | None]:
        lines: list[dict[str, Any]] = []
        for request in group:
            assert request.bulk_action is not None
            lines.append(request.bulk_action)
            if request.body is not None:
                lines.append(request.body)

        response = await self._client.request("POST", "/_bulk", ndjson=lines)
        items = (response.body or {}).get("items", [])
        if len(items) != len(group):
            raise RemoteServiceError(
                f"Bulk response has {len(items)} item(s) for {len(group)} request(s)",
                status_code=response.status_code,
                body=response.body,
            )

        errors: list[BaseException | None] = []
        for request, item in zip(group, items, strict=True):
            result = next(iter(item.values()), {})
            status = int(result.get("status", 200))
            if status >= 400 and status not in request.ignored_statuses:
                errors.append(BulkRequestError([{"request": request.describe(), "status": status, **result}]))
            else:
                errors.append(None)
        logger.debug("Bulk call with %d item(s) completed", len(group))
        return errors

    async def _refresh(self, requests: Iterable[BackendRequest]) -> None:
        indexes = sorted({r.index_name for r in requests if r.refresh_after_write})
        if indexes:
            await self._client.request("POST", f"/{','.join(indexes)}/_refresh")
            logger.debug("Refreshed index(es): %s", ", ".join(indexes))


def _forget(pending: set[asyncio.Future[None]], future: asyncio.Future[None]) -> None:
    pending.discard(future)
    if not future.cancelled():
        # Failures are reported through await_async_processing_completion().
        future.exception()


def _notify_failure(request: BackendRequest, error: BaseException) -> None:
    if request.monitor is not None:
        request.monitor.request_failed(request, error)


def _failure_details(request: BackendRequest, error: BaseException) -> dict[str, Any]:
    if isinstance(error, BulkRequestError) and error.failures:
        return error.failures[0]
    return {"request": request.describe(), "error": str(error)}
