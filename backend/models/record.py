from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class AuditRecord:
    transcript: dict[str, Any]             # {"text": ...} as returned by the service
    prompt: dict[str, Any]
    video: dict[str, Any] | None
    elapsed_ms: int | None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data
