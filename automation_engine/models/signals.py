"""Signal source value types."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SystemStats:
    cpu_percent: float
    storage_used_percent: float


@dataclass
class QueryResult:
    rows: list[object] = field(default_factory=list)  # mappings, or sequences matching columns
    columns: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class UploadEvent:
    """Pushed by the host when a file upload completes."""

    owner_id: int
    file_name: str
    file_size_bytes: int
    file_url: str = ""
    event_type: str = "file_uploaded"
