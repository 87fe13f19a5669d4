from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class SessionType(str, Enum):
    FEEDING = "feeding"
    PUMPING = "pumping"


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"
    UNKNOWN = "unknown"


class Unit(str, Enum):
    ML = "ml"
    OZ = "oz"


class Source(str, Enum):
    MANUAL = "manual"
    IMPORTED = "imported"
    OCR = "ocr"
    AI_VISION = "ai_vision"


class FileFormat(str, Enum):
    CANONICAL_EXPORT = "canonical_export"
    LEGACY_BILINGUAL = "legacy_bilingual"
    PIVOT_DAILY = "pivot_daily"
    WORKBOOK = "workbook"
    JSON_BACKUP = "json_backup"
    VISION_ENTRIES = "vision_entries"
    UNRECOGNIZED = "unrecognized"


IMPORTED_SOURCES = (Source.IMPORTED, Source.OCR, Source.AI_VISION)


@dataclass(frozen=True)
class SessionRecord:
    timestamp: datetime
    amount_ml: float
    amount_entered: float
    unit_entered: Unit
    source: Source = Source.IMPORTED
    session_type: SessionType | None = None
    side: Side | None = None
    amount_left_ml: float | None = None
    amount_right_ml: float | None = None
    duration_min: float | None = None
    notes: str | None = None
    confidence: float = 1.0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    @property
    def effective_type(self) -> SessionType:
        return self.session_type or SessionType.FEEDING

    def with_id(self, record_id: int) -> "SessionRecord":
        return replace(self, id=record_id)

    def describe(self) -> str:
        amount = int(self.amount_ml) if float(self.amount_ml).is_integer() else self.amount_ml
        return f"{self.timestamp.isoformat()} {self.effective_type.value} {amount}ml"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Enum):
                payload[key] = value.value
            elif isinstance(value, datetime):
                payload[key] = value.isoformat()
        return payload


@dataclass(frozen=True)
class ImportResult:
    format: FileFormat
    sessions: tuple[SessionRecord, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    fatal: bool = False

    @property
    def feed_count(self) -> int:
        return sum(1 for s in self.sessions if s.effective_type == SessionType.FEEDING)

    @property
    def pump_count(self) -> int:
        return sum(1 for s in self.sessions if s.session_type == SessionType.PUMPING)

    @classmethod
    def failure(
        cls,
        message: str,
        file_format: FileFormat = FileFormat.UNRECOGNIZED,
        warnings: tuple[str, ...] = (),
    ) -> "ImportResult":
        return cls(format=file_format, errors=(message,), warnings=warnings, fatal=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format.value,
            "fatal": self.fatal,
            "feed_count": self.feed_count,
            "pump_count": self.pump_count,
            "session_count": len(self.sessions),
            "error_count": len(self.errors),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass
class CommitResult:
    imported: int = 0
    skipped: int = 0
    skipped_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "skipped_items": list(self.skipped_items),
        }
