"""Local storage for the latest dream recording and per-run audit records."""

from __future__ import annotations

import json
import logging
import mimetypes
import secrets
from datetime import datetime, timezone
from pathlib import Path

from models.record import AuditRecord
from services.errors import PersistenceError

logger = logging.getLogger(__name__)

LATEST_AUDIO_STEM = "dream-latest"
DEFAULT_AUDIO_SUFFIX = ".webm"
_KNOWN_SUFFIXES = {
    "audio/webm": ".webm",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/l16": ".pcm",
}


def audio_suffix(mime_type: str | None) -> str:
    """File suffix for a recording's mime type (codec parameters ignored)."""
    if not mime_type:
        return DEFAULT_AUDIO_SUFFIX
    base = mime_type.split(";", 1)[0].strip().lower()
    if base in _KNOWN_SUFFIXES:
        return _KNOWN_SUFFIXES[base]
    return mimetypes.guess_extension(base) or DEFAULT_AUDIO_SUFFIX


def record_filename(now: datetime | None = None) -> str:
    """
    Collision-free audit record name, e.g. ``dream-2026-10-19T08-30-12-123456Z-1f2e3d.json``.

    Microsecond timestamp plus a random suffix so two runs finishing in the
    same instant never share a file.
    """
    now_dt = now or datetime.now(timezone.utc)
    stamp = now_dt.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"dream-{stamp}-{secrets.token_hex(3)}.json"


class RecordStore:
    """
    Keeps exactly one copy of the latest raw recording and appends one JSON
    audit record per completed run under ``root``.

    Methods are blocking; the gateway runs them in a worker thread.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def save_latest_audio(self, data: bytes, *, mime_type: str | None = None) -> Path:
        """Overwrite the latest-recording slot. Older recordings with another suffix are removed."""
        suffix = audio_suffix(mime_type)
        target = self._root / f"{LATEST_AUDIO_STEM}{suffix}"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            for stale in self._root.glob(f"{LATEST_AUDIO_STEM}.*"):
                if stale != target:
                    stale.unlink(missing_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise PersistenceError(f"Failed to save latest recording: {exc}") from exc
        logger.info("[records] Saved latest recording (%d bytes) to %s", len(data), target)
        return target

    def append_record(self, record: AuditRecord) -> Path:
        target = self._root / record_filename(record.timestamp)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            # "x" mode: never overwrite an existing record.
            with target.open("x", encoding="utf-8") as fh:
                json.dump(record.to_dict(), fh, indent=2, ensure_ascii=False)
        except OSError as exc:
            raise PersistenceError(f"Failed to save dream record: {exc}") from exc
        logger.info("[records] Saved dream record to %s", target.name)
        return target

    def latest_audio(self) -> Path | None:
        matches = sorted(self._root.glob(f"{LATEST_AUDIO_STEM}.*"))
        return matches[0] if matches else None
