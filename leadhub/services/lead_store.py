"""
Lead store gateway (Directus `leads` collection)

All writes are single-record, last-write-wins: no version token, no retry.
Callers re-read before patching when races matter.
"""

import logging
from typing import Any, Dict, List, Optional

from leadhub.config import DIRECTUS_LEADS_COLLECTION
from leadhub.models import Lead, LeadStatus
from leadhub.services.directus_client import DirectusClient, DirectusError

logger = logging.getLogger("lead_store")


class LeadStore:
    """Typed facade over /items/leads"""

    def __init__(self, client: DirectusClient, collection: str = DIRECTUS_LEADS_COLLECTION):
        self.client = client
        self.collection = collection

    async def fetch_latest_incoming_lead(self) -> Optional[Lead]:
        rows = await self.client.read_items(self.collection, {
            "limit": 1,
            "sort": "-date_created",
            "fields": "*",
            "filter[status][_eq]": LeadStatus.INCOMING.value,
        })
        return Lead.from_item(rows[0]) if rows else None

    async def fetch_missed_leads(self, limit: int = 200) -> List[Lead]:
        rows = await self.client.read_items(self.collection, {
            "limit": limit,
            "sort": "-last_attempt_at,-date_created",
            "fields": "*",
            "filter[status][_eq]": LeadStatus.MISSED.value,
        })
        return [Lead.from_item(r) for r in rows]

    async def find_latest_missed_by_dedupe_key(self, dedupe_key: str) -> Optional[Lead]:
        """Most recently active missed lead for one identity"""
        rows = await self.client.read_items(self.collection, {
            "limit": 1,
            "sort": "-last_attempt_at,-date_created",
            "fields": "id,attempt_count,attempt_log,first_attempt_at,last_attempt_at,date_created",
            "filter[status][_eq]": LeadStatus.MISSED.value,
            "filter[dedupe_key][_eq]": dedupe_key,
        })
        return Lead.from_item(rows[0]) if rows else None

    async def create_lead(self, payload: Dict[str, Any]) -> Lead:
        item = await self.client.create_item(self.collection, payload)
        lead = Lead.from_item(item)
        if lead is None:
            raise DirectusError("Directus returned no lead on create")
        logger.info(f"Lead created: {lead.id} (source={payload.get('source')})")
        return lead

    async def patch_lead(self, lead_id: str, patch: Dict[str, Any]) -> Optional[Lead]:
        item = await self.client.update_item(self.collection, lead_id, patch)
        return Lead.from_item(item)

    async def delete_lead(self, lead_id: str) -> None:
        await self.client.delete_item(self.collection, lead_id)
        logger.info(f"Lead deleted: {lead_id}")
