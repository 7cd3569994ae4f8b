"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LEADHUB - Lead model (Directus `leads` collection)                          ║
║                                                                              ║
║  RULES:                                                                      ║
║  1. Created by the intake bridge with status=incoming                        ║
║  2. At most one `missed` lead per dedupe_key (enforced by the aggregator)    ║
║  3. attempt_log is newest first, capped at 30 entries                        ║
║  4. Unknown status/source values from external systems pass through         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, List, Any, Dict
from pydantic import BaseModel, ConfigDict, field_validator
from enum import Enum


ATTEMPT_LOG_LIMIT = 30


class LeadStatus(str, Enum):
    """
    Lead statuses. The set is open: anything else is UNKNOWN but kept as-is
    on the record.
    """
    INCOMING = "incoming"     # Just arrived, shown to an operator
    ONGOING = "ongoing"       # Answered / claimed by an operator
    MISSED = "missed"         # Nobody answered within the window
    REJECTED = "rejected"
    SPAM = "spam"
    DISCARDED = "discarded"
    PROCESSED = "processed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LeadStatus":
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class LeadSource(str, Enum):
    """Channel tags. Open set, OTHER for anything unrecognised."""
    PHONE = "phone"
    CENTRAL = "central"
    WHATSAPP = "whatsapp"
    TYPEBOT = "typebot"
    CHATWOOT = "chatwoot"
    EMAIL = "email"
    WEB = "web"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LeadSource":
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.OTHER


class LeadAttempt(BaseModel):
    """One entry of attempt_log"""
    model_config = ConfigDict(extra="allow")

    at: str
    source: Optional[str] = None
    note: Optional[str] = None


class Lead(BaseModel):
    """
    Lead record as stored in Directus.
    Extra fields are allowed so the record round-trips untouched.
    """
    model_config = ConfigDict(extra="allow")

    id: str

    # Directus system fields
    date_created: Optional[str] = None
    date_updated: Optional[str] = None

    status: Optional[str] = None
    source: Optional[str] = None
    # Trace of the external event (call id, conversation id, ...)
    source_event_id: Optional[str] = None

    # Identity
    phone: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    nif: Optional[str] = None

    # Aggregation
    dedupe_key: Optional[str] = None
    attempt_count: Optional[int] = None
    attempt_log: Optional[List[LeadAttempt]] = None
    first_attempt_at: Optional[str] = None
    last_attempt_at: Optional[str] = None

    # Operator bookkeeping
    contact_id: Optional[str] = None
    notes: Optional[str] = None
    claimed_by: Optional[str] = None
    claimed_at: Optional[str] = None
    discarded_at: Optional[str] = None

    @field_validator("id", "source_event_id", "contact_id", mode="before")
    @classmethod
    def ids_as_str(cls, v):
        return str(v) if v is not None else None

    @property
    def status_kind(self) -> LeadStatus:
        return LeadStatus.parse(self.status)

    @property
    def source_kind(self) -> LeadSource:
        return LeadSource.parse(self.source)

    def attempts(self) -> List[Dict[str, Any]]:
        """attempt_log as plain dicts (empty list when unset)"""
        return [a.model_dump(exclude_none=True) for a in (self.attempt_log or [])]

    @classmethod
    def from_item(cls, item: Optional[Dict[str, Any]]) -> Optional["Lead"]:
        if not item:
            return None
        data = dict(item)
        data["id"] = str(data.get("id"))
        log = data.get("attempt_log")
        if not isinstance(log, list):
            data["attempt_log"] = None
        return cls(**data)


def build_attempt_log(
    previous: Optional[List[Dict[str, Any]]],
    at: str,
    source: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Prepend a new attempt and keep the most recent ATTEMPT_LOG_LIMIT entries."""
    entry: Dict[str, Any] = {"at": at}
    if source:
        entry["source"] = source
    return ([entry] + list(previous or []))[:ATTEMPT_LOG_LIMIT]
