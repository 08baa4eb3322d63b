"""
Evidence records

Normalized, read-only facts about something a company did: a submitted form,
an uploaded document, a worker certification, an inspection or a training
session. Evidence is produced by the form/document services and only read by
the scoring engine.

Raw records arrive as loosely-typed dicts (database join rows, JSON uploads)
and are validated once, by parse_evidence(), into one of the typed records
below. Anything that fails validation raises EvidenceValidationError; the
aggregator logs and skips such records.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import ClassVar, Optional

from cor_audit.errors import EvidenceValidationError

VALID_STATUSES = frozenset({"valid", "current", "completed", "submitted", "approved", "active"})


@dataclass(frozen=True)
class EvidenceRecord:
    type: ClassVar[str] = ""

    reference_id: str
    element_numbers: tuple
    date: date
    status: str
    title: str = ""
    code: Optional[str] = None
    expiry_date: Optional[date] = None

    @property
    def is_valid_status(self):
        return self.status in VALID_STATUSES

    def is_expired(self, as_of):
        return self.expiry_date is not None and self.expiry_date < as_of

    def is_current(self, as_of):
        """Valid status, not dated in the future, not expired."""
        return self.is_valid_status and self.date <= as_of and not self.is_expired(as_of)

    def expires_within(self, as_of, days):
        if self.expiry_date is None:
            return False
        return self.expiry_date <= as_of + timedelta(days=days)

    def to_dict(self):
        return {
            "type": self.type,
            "reference_id": self.reference_id,
            "element_numbers": list(self.element_numbers),
            "date": self.date.isoformat(),
            "status": self.status,
            "title": self.title,
            "code": self.code,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


@dataclass(frozen=True)
class FormSubmission(EvidenceRecord):
    type: ClassVar[str] = "form_submission"


@dataclass(frozen=True)
class Document(EvidenceRecord):
    type: ClassVar[str] = "document"


@dataclass(frozen=True)
class Certification(EvidenceRecord):
    type: ClassVar[str] = "certification"


@dataclass(frozen=True)
class Inspection(EvidenceRecord):
    type: ClassVar[str] = "inspection"


@dataclass(frozen=True)
class Training(EvidenceRecord):
    type: ClassVar[str] = "training"


RECORD_TYPES = {cls.type: cls for cls in (FormSubmission, Document, Certification, Inspection, Training)}


def _parse_date(value, field_name, required=True):
    if value is None or value == "":
        if required:
            raise EvidenceValidationError(f"Missing {field_name}")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            raise EvidenceValidationError(f"Invalid {field_name}: {value!r}") from None
    raise EvidenceValidationError(f"Invalid {field_name}: {value!r}")


def _parse_element_numbers(raw):
    numbers = raw.get("element_numbers")
    if numbers is None and raw.get("element_number") is not None:
        numbers = [raw["element_number"]]
    if numbers is None:
        raise EvidenceValidationError("Missing element_numbers")
    if isinstance(numbers, (int, str)):
        numbers = [numbers]
    parsed = []
    for n in numbers:
        if isinstance(n, bool):
            raise EvidenceValidationError(f"Invalid element number: {n!r}")
        try:
            parsed.append(int(n))
        except (TypeError, ValueError):
            raise EvidenceValidationError(f"Invalid element number: {n!r}") from None
    if not parsed:
        raise EvidenceValidationError("Evidence record has no element numbers")
    # de-duplicate while keeping order
    return tuple(dict.fromkeys(parsed))


def parse_evidence(raw):
    """Validate a raw evidence mapping into a typed EvidenceRecord.

    Already-typed records are returned unchanged.
    """
    if isinstance(raw, EvidenceRecord):
        return raw
    if not isinstance(raw, dict):
        raise EvidenceValidationError(f"Evidence record must be a mapping, got {type(raw).__name__}")

    record_type = raw.get("type")
    cls = RECORD_TYPES.get(record_type)
    if cls is None:
        raise EvidenceValidationError(f"Unknown evidence type: {record_type!r}")

    reference_id = raw.get("reference_id", raw.get("id"))
    if reference_id is None or str(reference_id).strip() == "":
        raise EvidenceValidationError("Missing reference_id")

    status = raw.get("status")
    if not isinstance(status, str) or not status.strip():
        raise EvidenceValidationError("Missing status")

    code = raw.get("code")
    return cls(
        reference_id=str(reference_id),
        element_numbers=_parse_element_numbers(raw),
        date=_parse_date(raw.get("date"), "date"),
        status=status.strip().lower(),
        title=str(raw.get("title") or ""),
        code=str(code) if code else None,
        expiry_date=_parse_date(raw.get("expiry_date"), "expiry_date", required=False),
    )
