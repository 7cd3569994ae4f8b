"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LEAD INTAKE BRIDGE  (MongoDB `calls` -> Directus `leads`)                   ║
║                                                                              ║
║  Every tick (3s):                                                            ║
║  1. Read ONE unprocessed call (most recent first)                            ║
║  2. Final status (answered/rejected/spam) -> mark processed, skip            ║
║  3. Otherwise create a Directus lead with status=incoming                    ║
║  4. Mark the call processed ONLY after the lead was created                  ║
║     (create failure -> call stays unprocessed -> retried next tick)          ║
║                                                                              ║
║  - A tick finding the previous one still running is a no-op (not queued)     ║
║  - First failure warns the operator, later ones are only logged              ║
║  - Older unprocessed calls can starve while newer ones keep arriving         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from leadhub.config import db, BRIDGE_INTERVAL_SECONDS
from leadhub.models import (
    CallEvent,
    LeadSource,
    LeadStatus,
    PROCESSED_BRIDGED,
    PROCESSED_SKIPPED_FINAL,
)
from leadhub.services.identity import compute_dedupe_key
from leadhub.services.lead_store import LeadStore
from leadhub.services.notifications import Notifier
from leadhub.services.event_logger import log_event

logger = logging.getLogger("lead_bridge")

BRIDGE_JOB_ID = "lead_intake_bridge"

# Tick outcomes
OUTCOME_INACTIVE = "inactive"
OUTCOME_BUSY = "busy"
OUTCOME_IDLE = "idle"
OUTCOME_SKIPPED = "skipped"
OUTCOME_BRIDGED = "bridged"
OUTCOME_FAILED = "failed"


def map_call_source_to_lead_source(source: Optional[str]) -> LeadSource:
    s = (source or "").lower()
    if "whatsapp" in s:
        return LeadSource.WHATSAPP
    if "typebot" in s:
        return LeadSource.TYPEBOT
    if "chatwoot" in s or "chat" in s:
        return LeadSource.CHATWOOT
    if "email" in s:
        return LeadSource.EMAIL
    if "central" in s:
        return LeadSource.CENTRAL
    return LeadSource.PHONE


class LeadIntakeBridge:

    def __init__(
        self,
        store: LeadStore,
        calls_collection=None,
        notifier: Optional[Notifier] = None,
        on_lead_created: Optional[Callable] = None,
        audit: Callable = log_event,
    ):
        self.store = store
        self.calls = calls_collection if calls_collection is not None else db.calls
        self.notifier = notifier or Notifier()
        self.on_lead_created = on_lead_created
        self.audit = audit

        self._lock = asyncio.Lock()
        self._active = True
        self._warned = False
        self._scheduler = None

    @property
    def active(self) -> bool:
        return self._active

    # ==================== LIFECYCLE ====================

    def start(self, scheduler, interval_seconds: int = BRIDGE_INTERVAL_SECONDS):
        """Register the recurring tick on an APScheduler instance; the first tick runs right away"""
        self._active = True
        self._scheduler = scheduler
        scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=interval_seconds),
            id=BRIDGE_JOB_ID,
            name="Lead intake bridge",
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Lead intake bridge started (every {interval_seconds}s)")

    def stop(self):
        """Cancel polling; an in-flight tick finishes but its result is dropped"""
        self._active = False
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(BRIDGE_JOB_ID)
            except JobLookupError:
                logger.debug("Bridge job already removed")
            self._scheduler = None
        logger.info("Lead intake bridge stopped")

    # ==================== TICK ====================

    async def tick(self) -> str:
        if not self._active:
            return OUTCOME_INACTIVE
        if self._lock.locked():
            logger.debug("Bridge tick skipped: previous tick still running")
            return OUTCOME_BUSY

        async with self._lock:
            try:
                return await self._process_one()
            except Exception as e:
                logger.exception("Bridge tick failed")
                if not self._warned:
                    self._warned = True
                    self.notifier.notify(
                        "Lead intake bridge failed",
                        description=str(e) or "Error in calls -> leads bridge",
                        variant="destructive",
                    )
                return OUTCOME_FAILED

    async def _process_one(self) -> str:
        doc = await self.calls.find_one(
            {"is_processed": False},
            {"_id": 0},
            sort=[("created_at", -1)],
        )
        if not doc or not doc.get("id"):
            return OUTCOME_IDLE

        call = CallEvent(**doc)

        # Handled through another path: never re-enters the lead pipeline
        if call.is_final:
            await self._mark_processed(call.id, PROCESSED_SKIPPED_FINAL)
            logger.info(f"Call {call.id} skipped (final status: {call.status})")
            await self.audit("call_skipped_final", "call", call.id, details={"status": call.status})
            return OUTCOME_SKIPPED

        phone = call.phone_number or None
        lead = await self.store.create_lead({
            "status": LeadStatus.INCOMING.value,
            "source": map_call_source_to_lead_source(call.source).value,
            "source_event_id": call.id,
            "phone": phone,
            "display_name": call.customer_name or phone or "Lead",
            "notes": call.notes or None,
            "dedupe_key": compute_dedupe_key(phone=phone, email=None),
        })

        await self._mark_processed(call.id, PROCESSED_BRIDGED)
        logger.info(f"Call {call.id} bridged to lead {lead.id}")
        await self.audit("lead_bridged", "lead", lead.id, related={"call_id": call.id})

        if self._active and self.on_lead_created is not None:
            result = self.on_lead_created(lead)
            if asyncio.iscoroutine(result):
                await result
        return OUTCOME_BRIDGED

    async def _mark_processed(self, call_id: str, action: str):
        await self.calls.update_one(
            {"id": call_id},
            {"$set": {"is_processed": True, "processed_action": action}},
        )
