"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  MISSED-LEAD AGGREGATION                                                     ║
║                                                                              ║
║  Rule: one visible "missed" card per identity (dedupe_key)                   ║
║  - No dedupe key          -> mark the lead missed in place, never merged     ║
║  - Existing missed record -> +1 attempt on it, new lead deleted              ║
║  - No existing record     -> the lead itself becomes the missed record       ║
║                                                                              ║
║  attempt_log: newest first, 30 entries max                                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from leadhub.config import now_iso
from leadhub.models import Lead, LeadStatus, build_attempt_log
from leadhub.services.identity import compute_dedupe_key
from leadhub.services.lead_store import LeadStore
from leadhub.services.event_logger import log_event

logger = logging.getLogger("missed_aggregator")


class AggregationResult:
    """Outcome of one aggregation"""

    def __init__(
        self,
        kept_id: str,
        merged: bool = False,
        deleted_id: Optional[str] = None,
        dedupe_key: str = "",
        attempt_count: int = 1,
    ):
        self.kept_id = kept_id
        self.merged = merged  # True when folded into an existing missed record
        self.deleted_id = deleted_id
        self.dedupe_key = dedupe_key
        self.attempt_count = attempt_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kept_id": self.kept_id,
            "merged": self.merged,
            "deleted_id": self.deleted_id,
            "dedupe_key": self.dedupe_key,
            "attempt_count": self.attempt_count,
        }


class MissedLeadAggregator:
    """
    Moves a lead to `missed`, folding repeated attempts of the same identity
    into a single rolling record.

    Calls sharing a dedupe key are serialized in-process, so two timeouts for
    the same caller cannot both miss the existing record. Separate processes
    can still race (Directus has no conditional write).
    """

    def __init__(
        self,
        store: LeadStore,
        audit: Callable = log_event,
        now: Callable[[], str] = now_iso,
    ):
        self.store = store
        self.audit = audit
        self._now = now
        # dedupe_key -> [lock, holders]
        self._locks: Dict[str, list] = {}

    async def mark_missed(self, lead: Lead) -> AggregationResult:
        now = self._now()
        dedupe_key = lead.dedupe_key or compute_dedupe_key(phone=lead.phone, email=lead.email)

        if not dedupe_key:
            return await self._mark_in_place(lead, now)

        entry = self._locks.setdefault(dedupe_key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                result = await self._aggregate(lead, dedupe_key, now)
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(dedupe_key, None)

        await self.audit(
            "lead_missed",
            "lead",
            result.kept_id,
            details=result.to_dict(),
            related={"lead_id": lead.id},
        )
        return result

    async def _mark_in_place(self, lead: Lead, now: str) -> AggregationResult:
        """Ambiguous identity: never merged"""
        attempt_log = lead.attempts() or build_attempt_log([], now, lead.source)
        attempt_count = max(lead.attempt_count or 0, 1)

        await self.store.patch_lead(lead.id, {
            "status": LeadStatus.MISSED.value,
            "last_attempt_at": now,
            "first_attempt_at": lead.first_attempt_at or lead.date_created or now,
            "attempt_count": attempt_count,
            "attempt_log": attempt_log,
        })
        logger.info(f"Lead {lead.id} missed without dedupe key (kept as-is)")

        result = AggregationResult(kept_id=lead.id, attempt_count=attempt_count)
        await self.audit("lead_missed", "lead", lead.id, details=result.to_dict())
        return result

    async def _aggregate(self, lead: Lead, dedupe_key: str, now: str) -> AggregationResult:
        existing = await self.store.find_latest_missed_by_dedupe_key(dedupe_key)

        if existing and existing.id and existing.id != lead.id:
            attempt_count = (existing.attempt_count or 1) + 1

            await self.store.patch_lead(existing.id, {
                "attempt_count": attempt_count,
                "attempt_log": build_attempt_log(existing.attempts(), now, lead.source),
                "last_attempt_at": now,
                "first_attempt_at": existing.first_attempt_at or existing.date_created or now,
            })

            # Single card per identity: the new record is redundant
            await self.store.delete_lead(lead.id)

            logger.info(
                f"Lead {lead.id} merged into missed lead {existing.id} "
                f"({dedupe_key}, attempts={attempt_count})"
            )
            return AggregationResult(
                kept_id=existing.id,
                merged=True,
                deleted_id=lead.id,
                dedupe_key=dedupe_key,
                attempt_count=attempt_count,
            )

        attempt_count = max(lead.attempt_count or 0, 1)
        await self.store.patch_lead(lead.id, {
            "status": LeadStatus.MISSED.value,
            "dedupe_key": dedupe_key,
            "attempt_count": attempt_count,
            "attempt_log": build_attempt_log(lead.attempts(), now, lead.source),
            "last_attempt_at": now,
            "first_attempt_at": lead.first_attempt_at or lead.date_created or now,
        })
        logger.info(f"Lead {lead.id} marked missed ({dedupe_key})")
        return AggregationResult(kept_id=lead.id, dedupe_key=dedupe_key, attempt_count=attempt_count)
