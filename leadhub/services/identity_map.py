"""
Identity map gateway (Directus `newsletter_identity_map`)

One row per reconciled person, keyed by normalized email and/or phone.
Only a cache of matches, never authoritative.
"""

import logging
from typing import Optional

from leadhub.config import DIRECTUS_IDENTITY_MAP_COLLECTION
from leadhub.models import IdentityMapEntry
from leadhub.services.directus_client import DirectusClient
from leadhub.services.identity import normalize_email

logger = logging.getLogger("identity_map")


def normalize_map_phone(phone: Optional[str]) -> str:
    return (phone or "").strip()


class IdentityMapStore:

    def __init__(self, client: DirectusClient, collection: str = DIRECTUS_IDENTITY_MAP_COLLECTION):
        self.client = client
        self.collection = collection

    async def find(self, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[IdentityMapEntry]:
        email = normalize_email(email)
        phone = normalize_map_phone(phone)
        if not email and not phone:
            return None

        params = {"limit": 1, "fields": "*"}
        i = 0
        if email:
            params[f"filter[_or][{i}][email_normalized][_eq]"] = email
            i += 1
        if phone:
            params[f"filter[_or][{i}][phone_e164][_eq]"] = phone

        rows = await self.client.read_items(self.collection, params)
        return IdentityMapEntry(**rows[0]) if rows else None

    async def upsert(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        directus_contact_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        matched_by: Optional[str] = None,
        confidence: Optional[int] = None,
        last_verified_at: Optional[str] = None,
    ) -> IdentityMapEntry:
        email_normalized = normalize_email(email) or None
        phone_e164 = normalize_map_phone(phone) or None
        if not email_normalized and not phone_e164:
            raise ValueError("identity_map needs an email or a phone")

        payload = {
            "email_normalized": email_normalized,
            "phone_e164": phone_e164,
            "matched_by": matched_by,
            "confidence": confidence,
            "last_verified_at": last_verified_at,
        }
        # Never unlink a side that is already known
        if directus_contact_id:
            payload["directus_contact_id"] = str(directus_contact_id)
        if subscription_id:
            payload["subscription_id"] = str(subscription_id)

        existing = await self.find(email=email_normalized, phone=phone_e164)
        if existing and existing.id:
            item = await self.client.update_item(self.collection, existing.id, payload)
            logger.info(f"Identity map {existing.id} refreshed ({matched_by})")
        else:
            item = await self.client.create_item(self.collection, payload)
            logger.info(f"Identity map created ({matched_by}): {item.get('id')}")

        data = dict(item or {})
        if data.get("id") is None and existing is not None:
            data["id"] = existing.id
        return IdentityMapEntry(**data)
