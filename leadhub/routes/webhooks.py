"""
Legacy intake webhooks (telephony / n8n)

Both endpoints write one row in the MongoDB `calls` feed; the lead intake
bridge turns it into a Directus lead.
Auth: header x-webhook-token, compared to WEBHOOK_CALL_TOKEN / WEBHOOK_LEAD_TOKEN.
"""

import uuid
import logging
from fastapi import APIRouter, HTTPException, Depends, Header
from typing import Optional

from leadhub.config import db, now_iso, WEBHOOK_CALL_TOKEN, WEBHOOK_LEAD_TOKEN
from leadhub.models import CallWebhookPayload, VALID_CALL_STATUSES
from leadhub.models.call import (
    MAX_PHONE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_SOURCE_LENGTH,
    MAX_EXTERNAL_ID_LENGTH,
)

logger = logging.getLogger("webhooks")

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

DEFAULT_SOURCE = "n8n"


def get_calls_collection():
    return db.calls


def check_token(expected: str, received: Optional[str], name: str):
    if not expected:
        logger.error(f"{name} not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if received != expected:
        logger.info("Invalid or missing webhook token")
        raise HTTPException(status_code=401, detail="Unauthorized")


def validate_payload(data: CallWebhookPayload, check_status: bool):
    """Raise 400 on the first invalid field"""
    phone = data.resolved_phone
    name = data.resolved_name

    if phone and len(phone) > MAX_PHONE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Phone number too long (max {MAX_PHONE_LENGTH} chars)")
    if name and len(name) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail=f"Customer name too long (max {MAX_NAME_LENGTH} chars)")
    if len(data.notes or "") > MAX_NOTES_LENGTH:
        raise HTTPException(status_code=400, detail=f"Notes too long (max {MAX_NOTES_LENGTH} chars)")
    if check_status and data.status and data.status not in VALID_CALL_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status value")
    if data.source and len(data.source) > MAX_SOURCE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Source too long (max {MAX_SOURCE_LENGTH} chars)")
    external_id = data.resolved_external_id
    if external_id and len(external_id) > MAX_EXTERNAL_ID_LENGTH:
        raise HTTPException(status_code=400, detail=f"External ID too long (max {MAX_EXTERNAL_ID_LENGTH} chars)")


def build_notes(data: CallWebhookPayload) -> Optional[str]:
    lines = [data.notes] if data.notes else []
    if data.direction:
        lines.append(f"Direction: {data.direction}")
    if data.resolved_external_id:
        lines.append(f"External ID: {data.resolved_external_id}")
    return "\n".join(lines) or None


async def insert_call(calls, data: CallWebhookPayload, kind: str) -> dict:
    doc = {
        "id": str(uuid.uuid4()),
        "phone_number": data.resolved_phone,
        "customer_name": data.resolved_name,
        "source": data.source or DEFAULT_SOURCE,
        "notes": build_notes(data),
        "status": data.status or "incoming",
        "is_processed": False,
        "processed_action": None,
        "created_at": now_iso(),
    }
    try:
        await calls.insert_one(doc)
    except Exception as e:
        logger.error(f"Error inserting {kind}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to create {kind}: {str(e)}")

    # insert_one adds the Mongo _id to the dict
    doc.pop("_id", None)
    logger.info(f"{kind.capitalize()} created: {doc['id']} (source={doc['source']})")
    return doc


@router.post("/receive-call", status_code=201)
async def receive_call(
    data: CallWebhookPayload,
    x_webhook_token: Optional[str] = Header(None),
    calls=Depends(get_calls_collection),
):
    """Telephony event: one call row, status restricted to incoming|answered|missed|rejected"""
    check_token(WEBHOOK_CALL_TOKEN, x_webhook_token, "WEBHOOK_CALL_TOKEN")
    validate_payload(data, check_status=True)

    doc = await insert_call(calls, data, "call")
    return {
        "success": True,
        "message": "Call created successfully",
        "call_id": doc["id"],
        "data": doc,
    }


@router.post("/receive-lead", status_code=201)
async def receive_lead(
    data: CallWebhookPayload,
    x_webhook_token: Optional[str] = Header(None),
    calls=Depends(get_calls_collection),
):
    """Generic lead (forms, chat, n8n flows): any status accepted"""
    check_token(WEBHOOK_LEAD_TOKEN, x_webhook_token, "WEBHOOK_LEAD_TOKEN")
    validate_payload(data, check_status=False)

    doc = await insert_call(calls, data, "lead")
    return {
        "success": True,
        "message": "Lead created successfully",
        "lead_id": doc["id"],
        "data": doc,
    }
