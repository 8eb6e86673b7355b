"""
JSON File Ledger Storage

The whole ledger state lives in one JSON document on local disk.

DESIGN DECISION: Writes go to a temporary file in the same directory
which then replaces the real file. A crash mid-write leaves the previous
snapshot intact, never a half-written one.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budget_ledger.models.state import LedgerState
from budget_ledger.services.storage.interface import (
    LedgerStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class JsonFileLedgerStorage(LedgerStorageInterface):
    """Ledger state persisted as a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        reraise=True,
    )
    def _read_text(self) -> str:
        return self._path.read_text(encoding="utf-8")

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        reraise=True,
    )
    def _write_atomic(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def load_state(self) -> Optional[LedgerState]:
        """Load state from disk; None when the file does not exist yet."""
        if not self._path.exists():
            logger.info("ledger_state_missing", path=str(self._path))
            return None

        try:
            raw = self._read_text()
        except OSError as e:
            raise StorageError(f"Failed to read ledger state from {self._path}: {e}")

        try:
            state = LedgerState.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Ledger state file {self._path} is corrupt: {e}")

        logger.info(
            "ledger_state_loaded",
            path=str(self._path),
            accounts=len(state.accounts),
            processed_logs=len(state.processed_logs),
        )
        return state

    async def save_state(self, state: LedgerState) -> None:
        """Write state to disk atomically."""
        payload = state.model_dump_json(indent=2)
        try:
            self._write_atomic(payload)
        except OSError as e:
            raise StorageError(f"Failed to write ledger state to {self._path}: {e}")
