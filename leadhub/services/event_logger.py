"""
Leadhub - Event Logger

Audit trail for pipeline actions (bridge, aggregation, sync, operator decisions).
Single function to call from any route/service. Never raises: the audit trail
must not break the action it records.
"""

import uuid
import logging
from leadhub.config import db, now_iso

logger = logging.getLogger("event_logger")


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str,
    user: str = "system",
    details: dict = None,
    related: dict = None
):
    """
    Write a single event to the event_log collection.

    Args:
        action: e.g. lead_bridged, lead_aggregated, lead_answered, sync_updated
        entity_type: lead | call | contact | newsletter_subscription
        entity_id: ID of the primary entity
        user: operator label performing the action
        details: free-form dict (status, attempt_count, etc.)
        related: linked entity IDs (call_id, kept_id, target_id, etc.)
    """
    try:
        await db.event_log.insert_one({
            "id": str(uuid.uuid4()),
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user": user,
            "details": details or {},
            "related": related or {},
            "created_at": now_iso()
        })
    except Exception as e:
        logger.warning(f"event_log write failed ({action} {entity_type}:{entity_id}): {str(e)}")
