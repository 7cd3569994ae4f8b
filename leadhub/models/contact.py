"""
Contacts, newsletter subscriptions and the identity map

contacts                 -> authoritative for CRM identity
newsletter_subscriptions -> authoritative for marketing consent
newsletter_identity_map  -> cache of "these two records are the same person"
"""

from typing import Optional, Dict, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


# Fields carried with the same name on both sides
SHARED_SYNC_FIELDS: Tuple[str, ...] = (
    "email",
    "phone",
    "full_name",
    "whatsapp_opt_in",
    "coupon_code",
    "coupon_wc_id",
    "coupon_expires_at",
    "mautic_contact_id",
    "chatwoot_contact_id",
    "status",
    "created_at",
    "last_seen_at",
)

# contacts field -> newsletter_subscriptions field
CONTACT_TO_NEWSLETTER_ALIASES: Dict[str, str] = {
    "newsletter_source": "source",
    "newsletter_notes": "notes",
}
NEWSLETTER_TO_CONTACT_ALIASES: Dict[str, str] = {
    v: k for k, v in CONTACT_TO_NEWSLETTER_ALIASES.items()
}


class MatchedBy(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"
    MANUAL = "manual"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MatchedBy":
        try:
            return cls(str(value or "").lower())
        except ValueError:
            return cls.OTHER


# Confidence recorded on the identity map per match type
MATCH_CONFIDENCE = {
    MatchedBy.BOTH: 90,
    MatchedBy.EMAIL: 80,
    MatchedBy.PHONE: 70,
}


class IdentityMapEntry(BaseModel):
    """One reconciled identity"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    email_normalized: Optional[str] = None
    phone_e164: Optional[str] = None
    directus_contact_id: Optional[str] = None
    subscription_id: Optional[str] = None
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    matched_by: Optional[str] = None
    last_verified_at: Optional[str] = None

    @field_validator("id", "directus_contact_id", "subscription_id", mode="before")
    @classmethod
    def ids_as_str(cls, v):
        return str(v) if v is not None else None


class MatchedContact(BaseModel):
    """CRM contact recognised from an incoming phone number"""
    id: str
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    contact_person: Optional[str] = None
    nif: Optional[str] = None
    matched_field: str  # phone | whatsapp | contact_phone
