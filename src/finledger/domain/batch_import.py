"""Chunked, resumable batch import of new line items.

New items are written in fixed-size chunks, one store call per chunk and
strictly in order. When a chunk fails the batch stops in ``FAILED`` with the
chunk index recorded; :meth:`BatchImporter.retry` resumes from that chunk
and never resends chunks that were already written.

Each chunk is written under a key derived from the run id, the chunk index
and the chunk content. The store refuses a key it has already applied, so a
chunk that was committed but reported as failed is not inserted again on
retry, while a later import of the same data gets a fresh run id.

State transitions::

    IDLE -> PREVIEWING -> IMPORTING -> SUCCEEDED
                              |
                              +-> FAILED -> RETRYING -> IMPORTING
                                     |
                                     +-> CANCELLED
"""

import hashlib
import json
import logging
import uuid
from typing import Callable, Optional, Sequence

from finledger.domain.entities import ImportBatch, ImportState, LineItem
from finledger.domain.errors import ChunkWriteError, ImportStateError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 100

# Fields that identify a line item's content for chunk idempotency keys
_KEY_FIELDS = (
    "date",
    "amount",
    "type",
    "description",
    "symbol",
    "quantity",
    "price",
    "commission",
    "fee",
    "memo",
    "post_date",
    "cusip",
    "option_type",
    "option_strike",
    "option_expiration",
)

ChunkWriter = Callable[[list[LineItem], str], Sequence[LineItem]]
ProgressCallback = Callable[[int, int], None]


def _canonical(value) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "normalize"):
        # Decimal("-75.50") and Decimal("-75.5") must hash alike
        return format(value.normalize(), "f")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def chunk_key(run_id: str, index: int, account_id: int, items: Sequence[LineItem]) -> str:
    """Idempotency key of one chunk of one import run."""
    payload = {
        "run_id": run_id,
        "index": index,
        "account_id": account_id,
        "items": [[_canonical(getattr(item, name)) for name in _KEY_FIELDS] for item in items],
    }
    encoded = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def split_chunks(items: Sequence[LineItem], size: int = CHUNK_SIZE) -> list[list[LineItem]]:
    """Split items into consecutive chunks of at most ``size`` items."""
    if size < 1:
        raise ValidationError("Chunk size must be at least 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class BatchImporter:
    """State machine driving one chunked import into one account."""

    def __init__(
        self,
        writer: ChunkWriter,
        account_id: int,
        chunk_size: int = CHUNK_SIZE,
        progress: Optional[ProgressCallback] = None,
    ):
        """Initialize batch importer.

        Args:
            writer: Called as ``writer(items, chunk_key)`` for each chunk;
                must write the chunk atomically or raise, and return the
                written items (empty when the key was already applied)
            account_id: Target account, part of each chunk key
            chunk_size: Items per chunk
            progress: Optional ``progress(processed, total)`` callback run
                after every written chunk
        """
        if chunk_size < 1:
            raise ValidationError("Chunk size must be at least 1")
        self.writer = writer
        self.account_id = account_id
        self.chunk_size = chunk_size
        self.progress = progress
        self.batch = ImportBatch()

    @property
    def state(self) -> ImportState:
        return self.batch.state

    def _require_state(self, action: str, *allowed: ImportState) -> None:
        if self.batch.state not in allowed:
            raise ImportStateError(f"Cannot {action} an import that is {self.batch.state.value}")

    def preview(self, items: Sequence[LineItem]) -> ImportBatch:
        """Stage the new items and split them into chunks."""
        self._require_state("preview", ImportState.IDLE, ImportState.PREVIEWING)
        chunks = split_chunks(list(items), self.chunk_size)
        self.batch = ImportBatch(
            chunks=chunks,
            total_count=sum(len(chunk) for chunk in chunks),
            state=ImportState.PREVIEWING,
            run_id=uuid.uuid4().hex,
        )
        return self.batch

    def start(self) -> ImportBatch:
        """Write all staged chunks.

        Raises:
            ChunkWriteError: If a chunk cannot be written; the batch is left
                ``FAILED`` at that chunk
        """
        self._require_state("start", ImportState.PREVIEWING)
        self.batch.state = ImportState.IMPORTING
        return self._run()

    def run(self, items: Sequence[LineItem]) -> ImportBatch:
        """Preview and start in one call."""
        self.preview(items)
        return self.start()

    def retry(self) -> ImportBatch:
        """Resume a failed import at the chunk that failed."""
        self._require_state("retry", ImportState.FAILED)
        self.batch.state = ImportState.RETRYING
        logger.info("Retrying import from chunk %d", self.batch.failed_chunk + 1)
        self.batch.next_chunk = self.batch.failed_chunk
        self.batch.failed_chunk = None
        self.batch.last_error = None
        self.batch.state = ImportState.IMPORTING
        return self._run()

    def cancel(self) -> ImportBatch:
        """Give up on a failed import; written chunks stay written."""
        self._require_state("cancel", ImportState.FAILED)
        self.batch.state = ImportState.CANCELLED
        logger.info(
            "Import cancelled with %d of %d items written",
            self.batch.processed_count,
            self.batch.total_count,
        )
        return self.batch

    def _fail(self, index: int, message: str) -> None:
        batch = self.batch
        batch.state = ImportState.FAILED
        batch.failed_chunk = index
        batch.last_error = message
        logger.error("Chunk %d of %d failed: %s", index + 1, len(batch.chunks), message)

    def _run(self) -> ImportBatch:
        batch = self.batch
        for index in range(batch.next_chunk, len(batch.chunks)):
            chunk = batch.chunks[index]
            key = chunk_key(batch.run_id, index, self.account_id, chunk)
            resent = index in batch.sent_chunks
            batch.sent_chunks.add(index)
            try:
                written = list(self.writer(chunk, key))
            except Exception as exc:
                self._fail(index, str(exc))
                raise ChunkWriteError(index, str(exc)) from exc

            # Only a resent chunk may come back short: its first attempt committed
            if len(written) != len(chunk) and not resent:
                message = f"store wrote {len(written)} of {len(chunk)} line items"
                self._fail(index, message)
                raise ChunkWriteError(index, message)

            batch.created.extend(written)
            batch.processed_count += len(chunk)
            batch.next_chunk = index + 1
            logger.debug(
                "Chunk %d of %d written (%d/%d items)",
                index + 1,
                len(batch.chunks),
                batch.processed_count,
                batch.total_count,
            )
            if self.progress is not None:
                self.progress(batch.processed_count, batch.total_count)

        batch.state = ImportState.SUCCEEDED
        return batch
