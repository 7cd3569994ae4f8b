"""
Legacy call-event feed (MongoDB `calls` collection)

Written by the webhook intake, read by the lead intake bridge.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict


# Statuses accepted by receive-call
VALID_CALL_STATUSES = ["incoming", "answered", "missed", "rejected"]

# Calls already handled elsewhere never re-enter the lead pipeline
FINAL_CALL_STATUSES = ["answered", "rejected", "spam"]

# processed_action tags written back by the bridge
PROCESSED_BRIDGED = "bridged_to_directus"
PROCESSED_SKIPPED_FINAL = "bridge_skipped_final"

MAX_PHONE_LENGTH = 50
MAX_NAME_LENGTH = 200
MAX_NOTES_LENGTH = 5000
MAX_SOURCE_LENGTH = 100
MAX_EXTERNAL_ID_LENGTH = 200


class CallEvent(BaseModel):
    """One row of the call feed"""
    model_config = ConfigDict(extra="ignore")

    id: str
    phone_number: Optional[str] = None
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    source: Optional[str] = None
    status: Optional[str] = None
    is_processed: bool = False
    processed_action: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return str(self.status or "").lower() in FINAL_CALL_STATUSES


class CallWebhookPayload(BaseModel):
    """
    Body accepted by the legacy receive-call / receive-lead webhooks.
    Both naming variants are accepted (phone|phone_number, name|customer_name).
    """
    model_config = ConfigDict(extra="ignore")

    phone: Optional[str] = None
    phone_number: Optional[str] = None
    name: Optional[str] = None
    customer_name: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    direction: Optional[str] = None
    call_id: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def resolved_phone(self) -> Optional[str]:
        return self.phone or self.phone_number or None

    @property
    def resolved_name(self) -> Optional[str]:
        return self.name or self.customer_name or None

    @property
    def resolved_external_id(self) -> Optional[str]:
        return self.external_id or self.call_id or None
