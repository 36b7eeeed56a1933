"""
Whole-document JSON persistence for the ledger, review queue and decision log.

Every collection is loaded and saved as one JSON document. Callers follow a
load -> mutate -> save cycle; writes go to a temporary file that is then moved
over the original so a crash never leaves a half-written document.

Recovery rule: a document that fails to parse is copied aside as
``corrupted-<collection>-<epoch_ms>.json`` and the collection is reset to its
empty shape. Corrupt state never propagates to the caller.
"""

import json
import os
import shutil
import tempfile
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from timesync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# collection name -> (file name, empty document factory)
COLLECTIONS: dict[str, tuple[str, Callable[[], Any]]] = {
    "meetings": ("meetings.json", lambda: {"meetings": []}),
    "ledger": ("ai-agent-meetings.json", lambda: {"meetings": []}),
    "reviews": ("reviews.json", list),
    "decisions": ("review-decisions.json", list),
}


class StorageError(Exception):
    """Raised when a collection cannot be written or read from disk."""

    def __init__(self, message: str, collection: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.collection = collection
        self.recoverable = recoverable


class JsonDocumentStore:
    """Reads and writes named JSON collections under one directory."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)

    def initialize(self) -> None:
        """Create the storage directory and any missing collection files."""
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directory: {e}", recoverable=False) from e

        for name in COLLECTIONS:
            path = self.path_for(name)
            if not path.exists():
                self.save(name, self.empty(name))

        logger.info("JSON storage initialized", base_dir=str(self.base_dir))

    def path_for(self, collection: str) -> Path:
        if collection not in COLLECTIONS:
            raise StorageError(f"Unknown collection '{collection}'", collection=collection)
        return self.base_dir / COLLECTIONS[collection][0]

    def empty(self, collection: str) -> Any:
        return COLLECTIONS[collection][1]()

    def load(self, collection: str) -> Any:
        """
        Load a whole collection document.

        Returns:
            The parsed document, or the empty shape when the file is missing or corrupt.
        """
        path = self.path_for(collection)

        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            empty = self.empty(collection)
            self.save(collection, empty)
            return empty
        except OSError as e:
            raise StorageError(f"Failed to read {collection}: {e}", collection=collection) from e

        content = raw.strip().lstrip("\ufeff")
        if not content:
            return self.empty(collection)

        try:
            document = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(
                "Corrupt JSON document, resetting collection",
                collection=collection,
                error=str(e),
            )
            self._quarantine(collection, raw)
            empty = self.empty(collection)
            self.save(collection, empty)
            return empty

        expected = type(self.empty(collection))
        if not isinstance(document, expected):
            logger.error(
                "Unexpected document shape, resetting collection",
                collection=collection,
                expected=expected.__name__,
                found=type(document).__name__,
            )
            self._quarantine(collection, raw)
            empty = self.empty(collection)
            self.save(collection, empty)
            return empty

        return document

    def save(self, collection: str, document: Any) -> None:
        """Atomically replace a collection document."""
        path = self.path_for(collection)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, default=str)
                handle.write("\n")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save collection", collection=collection, error=str(e))
            raise StorageError(f"Failed to save {collection}: {e}", collection=collection) from e

    def backup(self, collection: str, prefix: str) -> Path:
        """Copy a collection document aside as ``<prefix>-<epoch_ms>.json``."""
        source = self.path_for(collection)
        target = self.base_dir / f"{prefix}-{int(time.time() * 1000)}.json"
        try:
            if source.exists():
                shutil.copyfile(source, target)
            else:
                target.write_text(json.dumps(self.empty(collection)), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to back up {collection}: {e}", collection=collection) from e

        logger.info("Collection backed up", collection=collection, backup=target.name)
        return target

    def create_backup(self) -> Path:
        """Snapshot the processed-meetings collection as ``backup-<iso>.json``."""
        meetings = self.load("meetings").get("meetings", [])
        stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
        target = self.base_dir / f"backup-{stamp}.json"
        try:
            target.write_text(json.dumps(meetings, indent=2), encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to create backup: {e}", collection="meetings") from e
        return target

    def restore_from_backup(self, backup_name: str) -> int:
        """Restore the processed-meetings collection from a named backup file."""
        source = self.base_dir / Path(backup_name).name
        try:
            meetings = json.loads(source.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to restore from {backup_name}: {e}", collection="meetings") from e

        if not isinstance(meetings, list):
            raise StorageError(f"Backup {backup_name} is not a meeting list", collection="meetings")

        self.save("meetings", {"meetings": meetings})
        return len(meetings)

    def is_writable(self) -> bool:
        """Readiness probe: can we create files in the storage directory."""
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=str(self.base_dir), delete=True):
                pass
            return True
        except OSError:
            return False

    def _quarantine(self, collection: str, raw: str) -> None:
        target = self.base_dir / f"corrupted-{collection}-{int(time.time() * 1000)}.json"
        try:
            target.write_text(raw, encoding="utf-8")
            logger.warning("Corrupt document preserved", collection=collection, backup=target.name)
        except OSError as e:
            logger.error("Failed to preserve corrupt document", collection=collection, error=str(e))
