"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LEADHUB - Models Package                                                    ║
║                                                                              ║
║  from leadhub.models import Lead, LeadStatus, CallEvent, ...                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Lead
from .lead import (
    ATTEMPT_LOG_LIMIT,
    LeadStatus,
    LeadSource,
    LeadAttempt,
    Lead,
    build_attempt_log,
)

# Call feed
from .call import (
    VALID_CALL_STATUSES,
    FINAL_CALL_STATUSES,
    PROCESSED_BRIDGED,
    PROCESSED_SKIPPED_FINAL,
    CallEvent,
    CallWebhookPayload,
)

# Contacts / newsletter
from .contact import (
    SHARED_SYNC_FIELDS,
    CONTACT_TO_NEWSLETTER_ALIASES,
    NEWSLETTER_TO_CONTACT_ALIASES,
    MatchedBy,
    MATCH_CONFIDENCE,
    IdentityMapEntry,
    MatchedContact,
)

__all__ = [
    # Lead
    "ATTEMPT_LOG_LIMIT",
    "LeadStatus",
    "LeadSource",
    "LeadAttempt",
    "Lead",
    "build_attempt_log",
    # Call feed
    "VALID_CALL_STATUSES",
    "FINAL_CALL_STATUSES",
    "PROCESSED_BRIDGED",
    "PROCESSED_SKIPPED_FINAL",
    "CallEvent",
    "CallWebhookPayload",
    # Contacts / newsletter
    "SHARED_SYNC_FIELDS",
    "CONTACT_TO_NEWSLETTER_ALIASES",
    "NEWSLETTER_TO_CONTACT_ALIASES",
    "MatchedBy",
    "MATCH_CONFIDENCE",
    "IdentityMapEntry",
    "MatchedContact",
]
