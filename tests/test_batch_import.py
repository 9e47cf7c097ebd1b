"""Tests for chunked, resumable batch import."""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from finledger.domain.batch_import import BatchImporter, chunk_key, split_chunks
from finledger.domain.entities import ImportState, LineItem
from finledger.domain.errors import ChunkWriteError, ImportStateError, ValidationError


def _items(count):
    start = date(2025, 1, 1)
    return [
        LineItem(date=start + timedelta(days=i), amount=Decimal(-i - 1), description=f"ITEM {i}")
        for i in range(count)
    ]


class RecordingWriter:
    """Chunk writer that records calls and can fail on chosen call numbers."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def __call__(self, items, key):
        self.calls.append((len(items), key))
        if len(self.calls) in self.fail_on:
            raise RuntimeError("network timeout")
        return list(items)


class TestSplitChunks:
    def test_sizes(self):
        assert [len(c) for c in split_chunks(_items(250), 100)] == [100, 100, 50]

    def test_empty(self):
        assert split_chunks([], 100) == []

    def test_invalid_size(self):
        with pytest.raises(ValidationError):
            split_chunks(_items(3), 0)


class TestChunkKey:
    def test_stable_within_a_run(self):
        items = _items(3)
        assert chunk_key("run", 0, 1, items) == chunk_key("run", 0, 1, list(items))

    def test_depends_on_run_index_account_and_content(self):
        items = _items(3)
        key = chunk_key("run", 0, 1, items)
        assert key != chunk_key("other-run", 0, 1, items)
        assert key != chunk_key("run", 1, 1, items)
        assert key != chunk_key("run", 0, 2, items)
        assert key != chunk_key("run", 0, 1, items[:2])

    def test_ignores_decimal_exponent(self):
        a = [LineItem(date=date(2025, 1, 1), amount=Decimal("-75.5"))]
        b = [LineItem(date=date(2025, 1, 1), amount=Decimal("-75.50"))]
        assert chunk_key("run", 0, 1, a) == chunk_key("run", 0, 1, b)


class TestBatchImporter:
    def test_writes_all_chunks_in_order(self):
        writer = RecordingWriter()
        progress = []
        importer = BatchImporter(writer, account_id=1, chunk_size=100, progress=lambda p, t: progress.append((p, t)))

        batch = importer.run(_items(250))

        assert [size for size, _ in writer.calls] == [100, 100, 50]
        assert progress == [(100, 250), (200, 250), (250, 250)]
        assert batch.state == ImportState.SUCCEEDED
        assert batch.processed_count == 250
        assert len(batch.created) == 250
        assert batch.progress == 1.0

    def test_failure_then_retry_resumes_at_failed_chunk(self):
        writer = RecordingWriter(fail_on={2})
        importer = BatchImporter(writer, account_id=1, chunk_size=100)
        importer.preview(_items(250))

        with pytest.raises(ChunkWriteError) as excinfo:
            importer.start()

        assert excinfo.value.chunk_index == 1
        assert importer.state == ImportState.FAILED
        assert importer.batch.processed_count == 100
        assert importer.batch.failed_chunk == 1
        assert importer.batch.last_error == "network timeout"

        batch = importer.retry()

        # The first chunk is never resent
        sent_keys = [key for _, key in writer.calls]
        assert sent_keys[1] == sent_keys[2]
        assert [size for size, _ in writer.calls] == [100, 100, 100, 50]
        assert batch.state == ImportState.SUCCEEDED
        assert batch.processed_count == 250
        assert batch.failed_chunk is None
        assert batch.last_error is None

    def test_processed_count_never_exceeds_total(self):
        writer = RecordingWriter(fail_on={3})
        importer = BatchImporter(writer, account_id=1, chunk_size=2)
        importer.preview(_items(5))
        with pytest.raises(ChunkWriteError):
            importer.start()
        assert importer.batch.processed_count == 4
        importer.retry()
        assert importer.batch.processed_count == importer.batch.total_count == 5

    def test_cancel_after_failure(self):
        importer = BatchImporter(RecordingWriter(fail_on={1}), account_id=1, chunk_size=10)
        importer.preview(_items(15))
        with pytest.raises(ChunkWriteError):
            importer.start()

        batch = importer.cancel()

        assert batch.state == ImportState.CANCELLED
        assert batch.processed_count == 0
        with pytest.raises(ImportStateError):
            importer.retry()

    def test_illegal_transitions(self):
        importer = BatchImporter(RecordingWriter(), account_id=1)
        with pytest.raises(ImportStateError):
            importer.start()
        with pytest.raises(ImportStateError):
            importer.retry()
        with pytest.raises(ImportStateError):
            importer.cancel()

        importer.run(_items(3))
        with pytest.raises(ImportStateError, match="succeeded"):
            importer.preview(_items(1))

    def test_empty_preview_succeeds_without_writes(self):
        writer = RecordingWriter()
        batch = BatchImporter(writer, account_id=1).run([])
        assert writer.calls == []
        assert batch.state == ImportState.SUCCEEDED
        assert batch.progress == 0.0

    def test_invalid_chunk_size(self):
        with pytest.raises(ValidationError):
            BatchImporter(RecordingWriter(), account_id=1, chunk_size=0)

    def test_store_skipping_a_first_send_fails_the_chunk(self):
        importer = BatchImporter(lambda items, key: [], account_id=1, chunk_size=2)
        importer.preview(_items(3))

        with pytest.raises(ChunkWriteError, match="wrote 0 of 2"):
            importer.start()

        assert importer.state == ImportState.FAILED
        assert importer.batch.failed_chunk == 0
        assert importer.batch.processed_count == 0

    def test_each_run_uses_its_own_keys(self):
        first, second = RecordingWriter(), RecordingWriter()
        BatchImporter(first, account_id=1, chunk_size=2).run(_items(4))
        BatchImporter(second, account_id=1, chunk_size=2).run(_items(4))

        first_keys = {key for _, key in first.calls}
        second_keys = {key for _, key in second.calls}
        assert len(first_keys) == 2
        assert first_keys.isdisjoint(second_keys)

    def test_as_dict(self):
        importer = BatchImporter(RecordingWriter(fail_on={1}), account_id=1, chunk_size=2)
        importer.preview(_items(3))
        with pytest.raises(ChunkWriteError):
            importer.start()
        assert importer.batch.as_dict() == {
            "state": "failed",
            "processed": 0,
            "total": 3,
            "chunks": 2,
            "failed_chunk": 0,
            "error": "network timeout",
        }


class TestStoreChunkIdempotency:
    def test_applied_chunk_is_not_written_twice(self, temp_db, sample_account):
        items = _items(3)
        key = chunk_key("run-1", 0, sample_account.id, items)
        assert not temp_db.is_chunk_applied(key)

        first = temp_db.create_line_items(sample_account.id, items, chunk_key=key)
        second = temp_db.create_line_items(sample_account.id, items, chunk_key=key)

        assert len(first) == 3
        assert second == []
        assert temp_db.is_chunk_applied(key)
        assert len(temp_db.list_line_items(account_id=sample_account.id)) == 3

    def test_retry_after_ambiguous_failure_does_not_duplicate(self, temp_db, sample_account):
        """A chunk that was written but reported as failed is skipped on retry."""
        calls = []

        def flaky_writer(items, key):
            written = temp_db.create_line_items(sample_account.id, items, chunk_key=key)
            calls.append(key)
            if len(calls) == 2:
                raise RuntimeError("connection reset after commit")
            return written

        importer = BatchImporter(flaky_writer, sample_account.id, chunk_size=2)
        importer.preview(_items(5))
        with pytest.raises(ChunkWriteError):
            importer.start()
        importer.retry()

        assert len(temp_db.list_line_items(account_id=sample_account.id)) == 5

    def test_reimport_after_delete_writes_again(self, temp_db, sample_account):
        items = _items(3)
        first = BatchImporter(
            lambda chunk, key: temp_db.create_line_items(sample_account.id, chunk, chunk_key=key),
            sample_account.id,
        ).run(items)
        temp_db.delete_line_items([item.id for item in first.created])

        second = BatchImporter(
            lambda chunk, key: temp_db.create_line_items(sample_account.id, chunk, chunk_key=key),
            sample_account.id,
        ).run(items)

        assert second.processed_count == 3
        assert len(second.created) == 3
        assert len(temp_db.list_line_items(account_id=sample_account.id)) == 3
