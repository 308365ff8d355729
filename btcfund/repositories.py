"""Repositories responsible for loading and persisting fund data."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from .config import AUDIT_LOG_FILE, HISTORICAL_DATA_FILE, SUMMARY_FILE, data_dir
from .exceptions import StorageError
from .models import FundState, FundSummary

logger = logging.getLogger(__name__)


def _write_json_atomic(path: Path, payload: Any) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class FundRepository:
    """Loads and saves the fund state as flat JSON files."""

    def __init__(self, base_path: Path | None = None) -> None:
        self._base_path = Path(base_path) if base_path is not None else data_dir()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def historical_path(self) -> Path:
        return self._base_path / HISTORICAL_DATA_FILE

    @property
    def summary_path(self) -> Path:
        return self._base_path / SUMMARY_FILE

    def load(self) -> FundState:
        """Read the fund state, falling back to an empty fund when unreadable."""
        path = self.historical_path
        if not path.exists():
            logger.warning("No fund data at %s; starting with an empty fund", path)
            return FundState()

        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
            if not isinstance(raw, dict):
                raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
            return FundState.from_record(raw)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Could not read fund data at %s (%s); starting empty", path, exc)
            return FundState()

    def save(self, state: FundState, summary: FundSummary) -> None:
        """Persist ``state``; the historical file is written last.

        The summary is rebuilt from the historical file on every load, so a
        failure on either write leaves the previous state authoritative.
        """
        try:
            _write_json_atomic(self.summary_path, summary.to_dict())
            _write_json_atomic(self.historical_path, state.to_record())
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to persist fund data: {exc}") from exc


class AuditLog:
    """Append-only JSON-lines trail of mutations. Writes are best effort."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @classmethod
    def in_directory(cls, base_path: Path) -> "AuditLog":
        return cls(Path(base_path) / AUDIT_LOG_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, action: str, **fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            **fields,
        }
        try:
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=str) + "\n")
        except OSError as exc:
            logger.warning("Audit log write failed for %s: %s", action, exc)

    def tail(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Return the newest ``limit`` entries, newest first."""
        if limit <= 0 or not self._path.exists():
            return []
        try:
            lines = [
                line
                for line in self._path.read_text(encoding="utf-8").splitlines()
                if line.strip()
            ]
        except OSError as exc:
            logger.warning("Audit log read failed: %s", exc)
            return []

        entries: List[Dict[str, Any]] = []
        for line in reversed(lines[-limit:]):
            try:
                entries.append(json.loads(line))
            except ValueError:
                entries.append({"raw": line})
        return entries
