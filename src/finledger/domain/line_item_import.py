"""Line item import domain service.

Ties the import pipeline together for one account: parse and normalize the
input, split candidates into new items and duplicates of what the account
already holds, then store the statement side data and write the new items
through a :class:`~finledger.domain.batch_import.BatchImporter`.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from finledger.database.base import Database
from finledger.domain.batch_import import CHUNK_SIZE, BatchImporter, ProgressCallback
from finledger.domain.duplicates import detect
from finledger.domain.entities import LineItem, StatementData
from finledger.domain.errors import NotFoundError, account_not_found
from finledger.domain.normalizer import SourceFormat
from finledger.parsers import ParseResult, parse_import_data, parse_import_file

logger = logging.getLogger(__name__)


@dataclass
class ImportPreview:
    """What an import would do, before anything is written."""

    account_id: int
    source_format: SourceFormat
    new_items: list[LineItem] = field(default_factory=list)
    duplicates: list[LineItem] = field(default_factory=list)
    statement: Optional[StatementData] = None
    errors: list[str] = field(default_factory=list)

    @property
    def total_parsed(self) -> int:
        return len(self.new_items) + len(self.duplicates)


class ImportService:
    """Service for importing statement files into an account."""

    def __init__(self, db: Database):
        """Initialize import service.

        Args:
            db: Database instance
        """
        self.db = db

    def _build_preview(self, account_id: int, result: ParseResult) -> ImportPreview:
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        existing = self.db.list_line_items(account_id=account_id)
        detection = detect(result.line_items, existing)
        logger.info(
            "Import preview for account %d: %d new, %d duplicate, %d rejected",
            account_id,
            len(detection.new_items),
            len(detection.duplicates),
            len(result.errors),
        )
        return ImportPreview(
            account_id=account_id,
            source_format=result.source_format,
            new_items=detection.new_items,
            duplicates=detection.duplicates,
            statement=result.statement,
            errors=result.error_messages,
        )

    def preview_file(self, account_id: int, path: str | Path) -> ImportPreview:
        """Parse a statement file and classify its line items.

        Raises:
            ParseError: If the file format is unrecognized or corrupt
            NotFoundError: If the account does not exist
        """
        return self._build_preview(account_id, parse_import_file(path))

    def preview_text(
        self,
        account_id: int,
        text: str,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ImportPreview:
        """Parse pasted or already-decoded statement data and classify it."""
        return self._build_preview(account_id, parse_import_data(text, filename, mime_type))

    def import_statement(self, preview: ImportPreview) -> Optional[int]:
        """Store the preview's statement side data, if it has any."""
        if preview.statement is None:
            return None
        statement_id = self.db.import_statement(preview.account_id, preview.statement)
        logger.info("Stored statement %d for account %d", statement_id, preview.account_id)
        return statement_id

    def create_importer(
        self,
        preview: ImportPreview,
        chunk_size: int = CHUNK_SIZE,
        progress: Optional[ProgressCallback] = None,
    ) -> BatchImporter:
        """Create a batch importer staged with the preview's new items."""
        account_id = preview.account_id

        def write_chunk(items: list[LineItem], key: str) -> list[LineItem]:
            return self.db.create_line_items(account_id, items, chunk_key=key)

        importer = BatchImporter(write_chunk, account_id, chunk_size=chunk_size, progress=progress)
        importer.preview(preview.new_items)
        return importer

    def run_import(
        self,
        preview: ImportPreview,
        chunk_size: int = CHUNK_SIZE,
        progress: Optional[ProgressCallback] = None,
    ) -> dict[str, Any]:
        """Store the statement and write all new items.

        Returns:
            Dict with import statistics:
            - imported: number of line items written
            - skipped: number of duplicates not imported
            - errors: row-level parse errors
            - statement_id: stored statement ID or None

        Raises:
            ChunkWriteError: If a chunk cannot be written; use
                :meth:`create_importer` to keep the importer for a retry
        """
        statement_id = self.import_statement(preview)
        importer = self.create_importer(preview, chunk_size=chunk_size, progress=progress)
        batch = importer.start()
        return {
            "imported": batch.processed_count,
            "skipped": len(preview.duplicates),
            "errors": list(preview.errors),
            "statement_id": statement_id,
        }
