"""Data models for index records and deletion targets."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from curriculo_cleanup.errors import MalformedRecordError

REQUIRED_FIELDS: tuple[str, ...] = ("cpf", "vaga", "data", "arquivo")


def parse_timestamp(value: Any) -> datetime:
    """ISO-8601 string -> aware datetime. Naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(raw: dict, key: str) -> str:
    value = raw.get(key)
    if value is None or isinstance(value, (dict, list, bool)):
        raise MalformedRecordError(f"field {key!r} is missing or not a scalar", field=key, raw=raw)
    text = str(value).strip()
    if not text:
        raise MalformedRecordError(f"field {key!r} is empty", field=key, raw=raw)
    return text


@dataclass
class Record:
    applicant_id: str
    job_posting_id: str
    submitted_at: datetime
    file_url: str
    display_name: str = "desconhecido"
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def identifier(self) -> tuple[str, str]:
        """Dedup key: the same applicant applying to the same posting."""
        return (self.applicant_id, self.job_posting_id)

    @classmethod
    def from_dict(cls, raw: Any) -> "Record":
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"expected an object, got {type(raw).__name__}", raw=raw)
        for key in REQUIRED_FIELDS:
            _text(raw, key)
        try:
            submitted_at = parse_timestamp(raw["data"])
        except ValueError as exc:
            raise MalformedRecordError(f"field 'data' is not a timestamp: {exc}", field="data", raw=raw) from None

        nome = raw.get("nome")
        return cls(
            applicant_id=_text(raw, "cpf"),
            job_posting_id=_text(raw, "vaga"),
            submitted_at=submitted_at,
            file_url=_text(raw, "arquivo"),
            display_name=str(nome).strip() if nome else "desconhecido",
            raw=dict(raw),
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire shape. Entries read from the index are written back verbatim."""
        if self.raw:
            return dict(self.raw)
        return {
            "nome": self.display_name,
            "cpf": self.applicant_id,
            "vaga": self.job_posting_id,
            "data": self.submitted_at.isoformat(),
            "arquivo": self.file_url,
        }

    def describe(self) -> str:
        return f"{self.display_name} (CPF: {self.applicant_id}, Vaga: {self.job_posting_id})"


@dataclass
class IndexSnapshot:
    records: list[Record]
    sha: str | None = None
    # (position in the index, raw entry) for entries that failed validation
    malformed: list[tuple[int, Any]] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.sha is not None

    def __len__(self) -> int:
        return len(self.records) + len(self.malformed)


@dataclass(frozen=True)
class RemoteFileRef:
    path: str
    display_name: str = "desconhecido"
    reason: str = ""


@dataclass(frozen=True)
class RemoteContent:
    path: str
    sha: str
    content: bytes
