"""Unit tests for the import progress channel."""

import asyncio
from uuid import uuid4

import pytest

from bankfeed.services.progress import ImportProgressTracker, ImportProgressUpdate, ProgressStatus
from fakes import FakeClock


def update(status: ProgressStatus, **fields) -> ImportProgressUpdate:
    return ImportProgressUpdate(status=status, **fields)


class TestImportProgressUpdate:
    def test_event_uses_camel_case(self):
        event = update(
            ProgressStatus.PROCESSING,
            transactions_fetched=250,
            transactions_processed=50,
            duplicates_skipped=3,
            current_batch=1,
        ).to_event()

        assert event == {
            "status": "processing",
            "transactionsFetched": 250,
            "transactionsProcessed": 50,
            "duplicatesSkipped": 3,
            "currentBatch": 1,
        }

    def test_optional_fields_omitted(self):
        event = update(ProgressStatus.FAILED, error="Rate limit exceeded").to_event()
        assert "currentBatch" not in event
        assert "message" not in event
        assert event["error"] == "Rate limit exceeded"

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (ProgressStatus.FETCHING, False),
            (ProgressStatus.PROCESSING, False),
            (ProgressStatus.COMPLETED, True),
            (ProgressStatus.FAILED, True),
        ],
    )
    def test_terminal_statuses(self, status, terminal):
        assert update(status).is_terminal is terminal


class TestImportProgressTracker:
    def test_subscribers_receive_updates_for_their_sync_only(self):
        tracker = ImportProgressTracker()
        sync_a, sync_b = uuid4(), uuid4()
        received_a, received_b = [], []
        tracker.subscribe(sync_a, received_a.append)
        tracker.subscribe(sync_b, received_b.append)

        tracker.emit(sync_a, update(ProgressStatus.FETCHING))

        assert len(received_a) == 1
        assert received_b == []

    def test_unsubscribe(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        received = []
        unsubscribe = tracker.subscribe(sync_id, received.append)

        unsubscribe()
        tracker.emit(sync_id, update(ProgressStatus.FETCHING))

        assert received == []
        assert tracker.subscriber_count(sync_id) == 0

    def test_terminal_event_drops_subscribers(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        received = []
        tracker.subscribe(sync_id, received.append)

        tracker.emit(sync_id, update(ProgressStatus.PROCESSING))
        tracker.emit(sync_id, update(ProgressStatus.COMPLETED))
        tracker.emit(sync_id, update(ProgressStatus.PROCESSING))

        assert [item.status for item in received] == [ProgressStatus.PROCESSING, ProgressStatus.COMPLETED]
        assert tracker.subscriber_count(sync_id) == 0

    def test_terminal_event_retained_for_late_observers(self):
        clock = FakeClock()
        tracker = ImportProgressTracker(retention_seconds=300, clock=clock)
        sync_id = uuid4()
        tracker.emit(sync_id, update(ProgressStatus.FETCHING, transactions_fetched=100))
        assert tracker.latest(sync_id).transactions_fetched == 100

        tracker.emit(sync_id, update(ProgressStatus.FAILED))
        assert tracker.latest(sync_id).status == ProgressStatus.FAILED

        clock.advance(301)
        assert tracker.latest(sync_id) is None

    def test_failing_subscriber_isolated(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        received = []

        def broken(_update):
            raise RuntimeError("client went away")

        tracker.subscribe(sync_id, broken)
        tracker.subscribe(sync_id, received.append)

        tracker.emit(sync_id, update(ProgressStatus.FETCHING))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_stream_ends_after_terminal_event(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        tracker.emit(sync_id, update(ProgressStatus.FETCHING, transactions_fetched=10))

        async def consume():
            return [item async for item in tracker.stream(sync_id)]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        tracker.emit(sync_id, update(ProgressStatus.PROCESSING))
        tracker.emit(sync_id, update(ProgressStatus.COMPLETED, message="Import complete"))
        events = await asyncio.wait_for(task, timeout=1)

        assert [item.status for item in events] == [
            ProgressStatus.FETCHING,
            ProgressStatus.PROCESSING,
            ProgressStatus.COMPLETED,
        ]
        assert tracker.subscriber_count(sync_id) == 0

    @pytest.mark.asyncio
    async def test_stream_opened_after_completion_yields_terminal_event(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        tracker.emit(sync_id, update(ProgressStatus.PROCESSING))
        tracker.emit(sync_id, update(ProgressStatus.COMPLETED, transactions_processed=190))

        async def consume():
            return [item async for item in tracker.stream(sync_id)]

        events = await asyncio.wait_for(consume(), timeout=1)

        assert [item.status for item in events] == [ProgressStatus.COMPLETED]
        assert events[0].transactions_processed == 190
        assert tracker.subscriber_count(sync_id) == 0

    @pytest.mark.asyncio
    async def test_stream_sends_keepalives_while_idle(self):
        tracker = ImportProgressTracker()
        sync_id = uuid4()
        stream = tracker.stream(sync_id, keepalive_seconds=0.01)

        first = await asyncio.wait_for(anext(stream), timeout=1)
        tracker.emit(sync_id, update(ProgressStatus.FAILED, error="Rate limit exceeded"))
        rest = [item async for item in stream]

        assert first is None
        assert [item.status for item in rest if item is not None] == [ProgressStatus.FAILED]

    @pytest.mark.asyncio
    async def test_stream_gives_up_after_max_duration(self):
        clock = FakeClock()
        tracker = ImportProgressTracker(clock=clock)
        sync_id = uuid4()
        stream = tracker.stream(sync_id, keepalive_seconds=0.01, max_seconds=600)

        assert await asyncio.wait_for(anext(stream), timeout=1) is None
        clock.advance(601)
        remaining = await asyncio.wait_for(_drain(stream), timeout=1)

        assert remaining == []
        assert tracker.subscriber_count(sync_id) == 0


async def _drain(stream):
    return [item async for item in stream]
