"""
Service / facade layer for sleep imports.

This module implements the import pipeline rules. It is free of SQL; all
persistence goes through `SleepLogRepo`. Routes and scripts call
`ImportService.handle_file_upload()` and get an `ImportResult` back. The
service never raises for bad input; failures come back as error strings.

Key responsibilities:
- pick a parser from the file name (`.csv`, `.json`, `.xml`, case-sensitive)
- drive `ChunkReader` so progress and cancellation work for every format
- reconcile parsed nights with the store: one upsert per batch keyed by
  (user_id, date), so re-importing the same file changes nothing
- isolate failures: a failed batch adds one error and the rest continue
"""

import logging
import threading
from typing import BinaryIO, Iterator, List, Optional

from dates import resolve_timezone
from models import DailySleepEntry, ImportResult
from parsers import parse_sleep_csv, parse_sleep_csv_text, parse_sleep_json
from repo_sleep import SleepLogRepo
from settings import settings
from source_reader import ChunkReader, ImportCancelled, ProgressCallback, stream_size
from xml_stream import SleepXMLScanner

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"
NO_ENTRIES_FOUND = "No valid sleep records found in file"
IMPORT_CANCELLED = "Import cancelled"

FILE_TYPES = {
    ".csv": "csv",
    ".json": "json",
    ".xml": "xml",
}


def detect_file_type(filename: str) -> Optional[str]:
    for suffix, file_type in FILE_TYPES.items():
        if filename.endswith(suffix):
            return file_type
    return None


def dedupe_by_date(entries: List[DailySleepEntry]) -> List[DailySleepEntry]:
    """Keep one entry per date; the last occurrence wins."""
    by_date = {}
    for e in entries:
        by_date[e.date] = e
    return list(by_date.values())


def batched(entries: List[DailySleepEntry], size: int) -> Iterator[List[DailySleepEntry]]:
    for i in range(0, len(entries), size):
        yield entries[i:i + size]


class ImportService:
    """Parse an uploaded export and write its nights for one user.

    Example usage:
        repo = SleepLogRepo()
        svc = ImportService(repo)
        with open("export.xml", "rb") as f:
            result = svc.handle_file_upload("export.xml", f, user_id="alex")
    """

    def __init__(self, repo: SleepLogRepo, batch_size: Optional[int] = None):
        self.repo = repo
        self.batch_size = batch_size

    def handle_file_upload(
        self,
        filename: str,
        stream: BinaryIO,
        user_id: Optional[str],
        total_bytes: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ImportResult:
        """Import one file. Always returns a result; never raises.

        Steps:
        1. Fail fast without a user or with an unknown file type.
        2. Parse the stream into `DailySleepEntry`s (progress reported).
        3. Upsert the entries in batches via `write_entries()`.
        """

        # 1) guards
        if not user_id:
            return ImportResult(success=False, errors=[NOT_AUTHENTICATED])
        file_type = detect_file_type(filename)
        if file_type is None:
            return ImportResult(success=False, errors=[f"Unsupported file type: {filename}"])

        try:
            # 2) parse
            if total_bytes is None:
                total_bytes = stream_size(stream)
            reader = ChunkReader(
                stream,
                total_bytes=total_bytes,
                chunk_size=settings.import_chunk_size,
                on_progress=on_progress,
                cancel=cancel,
                interval_ms=settings.progress_interval_ms,
                yield_seconds=settings.yield_seconds,
            )
            entries = self.parse(file_type, reader)
            reader.finish()
            logger.info(
                "Parsed %d nights from %s (%s, %s bytes) for %s",
                len(entries), filename, file_type, total_bytes, user_id,
            )
            if not entries:
                return ImportResult(success=False, errors=[NO_ENTRIES_FOUND])

            # 3) reconcile
            return self.write_entries(user_id, entries, cancel=cancel)
        except ImportCancelled:
            logger.info("Import of %s cancelled for %s", filename, user_id)
            return ImportResult(success=False, errors=[IMPORT_CANCELLED])
        except Exception as e:
            logger.exception("Import of %s failed for %s", filename, user_id)
            return ImportResult(success=False, errors=[f"Import failed: {e}"])

    def parse(self, file_type: str, reader: ChunkReader) -> List[DailySleepEntry]:
        """Run the parser for `file_type` over `reader`."""

        source = settings.import_source_tag
        if file_type == "csv":
            if reader.total_bytes is not None and reader.total_bytes <= settings.small_file_bytes:
                return parse_sleep_csv_text(reader.read_text(), source=source)
            return parse_sleep_csv(reader.iter_lines(), source=source)

        if file_type == "json":
            return parse_sleep_json(reader, source=source)

        scanner = SleepXMLScanner(
            tz=resolve_timezone(settings.import_timezone),
            max_pending=settings.xml_max_pending_bytes,
            source=source,
        )
        for chunk in reader:
            scanner.feed(chunk)
        return scanner.close()

    def write_entries(
        self,
        user_id: str,
        entries: List[DailySleepEntry],
        cancel: Optional[threading.Event] = None,
    ) -> ImportResult:
        """Upsert `entries` for `user_id` batch by batch.

        A failing batch is recorded as one error naming its first date and
        the remaining batches still run. `imported` counts rows from the
        batches that succeeded.
        """

        unique = dedupe_by_date(entries)
        batch_size = self.batch_size or settings.import_batch_size

        # The users row must exist before sleep_logs rows can reference it.
        self.repo.ensure_user(user_id)

        imported = 0
        errors: List[str] = []
        for batch in batched(unique, batch_size):
            if cancel is not None and cancel.is_set():
                errors.append(IMPORT_CANCELLED)
                break
            try:
                imported += self.repo.upsert_sleep_entries(user_id, batch)
            except Exception as e:
                logger.warning("Batch starting %s failed for %s: %s", batch[0].date, user_id, e)
                errors.append(f"Failed to import batch starting {batch[0].date}: {e}")

        logger.info("Imported %d of %d nights for %s", imported, len(unique), user_id)
        return ImportResult(success=imported > 0, imported=imported, errors=errors)
