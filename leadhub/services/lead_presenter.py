"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  INCOMING-LEAD PRESENTATION                                                  ║
║                                                                              ║
║  LeadPresenter (one lead at a time):                                         ║
║    idle -> visible(counting 18s) -> answered | rejected | spam | timed_out   ║
║                                  -> closed (explicit dismiss, no write)      ║
║                                                                              ║
║  - Operator action cancels the countdown, patches the lead, dismisses        ║
║  - Action failure: destructive notification, popup stays open for retry     ║
║  - Countdown at zero with nothing in flight -> missed-lead aggregation       ║
║  - The countdown task is released on every exit path                         ║
║                                                                              ║
║  IncomingLeadListener: polls the latest incoming lead, first-found           ║
║  first-shown, never re-presents a dismissed lead in this session.            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from leadhub.config import now_iso, LEAD_POPUP_SECONDS, LISTENER_INTERVAL_SECONDS
from leadhub.models import Lead, LeadStatus, MatchedContact
from leadhub.services.contact_lookup import ContactLookup
from leadhub.services.directus_client import DirectusError
from leadhub.services.lead_store import LeadStore
from leadhub.services.missed_aggregator import MissedLeadAggregator
from leadhub.services.notifications import Notifier
from leadhub.services.event_logger import log_event

logger = logging.getLogger("lead_presenter")

LISTENER_JOB_ID = "incoming_lead_listener"


class PresenterState(str, Enum):
    IDLE = "idle"
    VISIBLE = "visible"
    ANSWERED = "answered"
    REJECTED = "rejected"
    SPAM = "spam"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


class NoVisibleLeadError(Exception):
    """Operator action with no lead on screen"""


class LeadActionError(Exception):
    """The store rejected an operator decision; the lead is unchanged"""


class LeadPresenter:

    def __init__(
        self,
        store: LeadStore,
        aggregator: MissedLeadAggregator,
        notifier: Optional[Notifier] = None,
        window_seconds: int = LEAD_POPUP_SECONDS,
        tick_seconds: float = 1.0,
        on_dismiss: Optional[Callable[[str], Any]] = None,
        audit: Callable = log_event,
        now: Callable[[], str] = now_iso,
    ):
        self.store = store
        self.aggregator = aggregator
        self.notifier = notifier or Notifier()
        self.window_seconds = window_seconds
        self.tick_seconds = tick_seconds
        self.on_dismiss = on_dismiss
        self.audit = audit
        self._now = now

        self.state = PresenterState.IDLE
        self.lead: Optional[Lead] = None
        self.matched_contact: Optional[MatchedContact] = None
        self.time_left = window_seconds
        self.busy: Optional[str] = None  # answer | reject | spam | timeout
        self._timer: Optional[asyncio.Task] = None

    @property
    def visible(self) -> bool:
        return self.state == PresenterState.VISIBLE and self.lead is not None

    @property
    def timer_task(self) -> Optional[asyncio.Task]:
        return self._timer

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "visible": self.visible,
            "lead": self.lead.model_dump() if self.lead else None,
            "matched_contact": self.matched_contact.model_dump() if self.matched_contact else None,
            "time_left": self.time_left,
            "window_seconds": self.window_seconds,
            "busy": self.busy,
        }

    # ==================== COUNTDOWN ====================

    async def show(self, lead: Lead, matched_contact: Optional[MatchedContact] = None):
        """Present a lead and (re)start the countdown"""
        self._stop_timer()
        self.lead = lead
        self.matched_contact = matched_contact
        self.state = PresenterState.VISIBLE
        self.time_left = self.window_seconds
        self.busy = None
        self._timer = asyncio.create_task(self._countdown(lead.id))
        logger.info(f"Presenting lead {lead.id} ({lead.display_name or lead.phone or lead.email})")

    async def _countdown(self, lead_id: str):
        while self.time_left > 0:
            await asyncio.sleep(self.tick_seconds)
            if not self.visible or self.lead.id != lead_id:
                return
            self.time_left = max(self.time_left - 1, 0)

        # Timer done: the timeout path must not cancel its own task
        self._timer = None
        await self._on_timeout()

    async def _on_timeout(self):
        if not self.visible or self.busy:
            return

        lead = self.lead
        self.busy = "timeout"
        try:
            await self.aggregator.mark_missed(lead)
            self.notifier.notify("Lead not answered", description="Moved to missed leads.")
        except Exception:
            logger.exception(f"Missed-lead aggregation failed for {lead.id}")
        finally:
            if self._showing(lead.id):
                self.busy = None
            self._dismiss(PresenterState.TIMED_OUT, lead.id)

    def _stop_timer(self):
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    def _showing(self, lead_id: str) -> bool:
        return self.lead is not None and self.lead.id == lead_id

    def _dismiss(self, final_state: PresenterState, lead_id: str):
        """Close the popup of lead_id; a lead shown since then is left alone"""
        if not self._showing(lead_id):
            return
        self._stop_timer()
        self.state = final_state
        self.lead = None
        self.matched_contact = None
        if self.on_dismiss is not None:
            self.on_dismiss(lead_id)

    def shutdown(self):
        self._stop_timer()

    # ==================== OPERATOR ACTIONS ====================

    async def _decide(
        self,
        action: str,
        patch: Dict[str, Any],
        final_state: PresenterState,
        success_title: str,
        failure_title: str,
        success_variant: str = "default",
        user: str = "operator",
    ) -> Optional[Lead]:
        if not self.visible:
            raise NoVisibleLeadError("No lead is being presented")
        if self.busy:
            logger.info(f"Action {action} ignored: {self.busy} in flight")
            return None

        self._stop_timer()
        self.busy = action
        lead = self.lead
        try:
            await self.store.patch_lead(lead.id, patch)
        except Exception as e:
            logger.exception(f"Lead {lead.id}: {action} failed")
            self.notifier.notify(failure_title, description=str(e), variant="destructive")
            raise LeadActionError(str(e)) from e
        finally:
            if self._showing(lead.id):
                self.busy = None

        self.notifier.notify(success_title, variant=success_variant)
        await self.audit(f"lead_{final_state.value}", "lead", lead.id, user=user, details=patch)
        self._dismiss(final_state, lead.id)
        return lead

    async def answer(self, claimed_by: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Claim the lead. Returns the prefill for the contact card the operator
        fills next (None when another action is in flight).
        """
        patch = {"status": LeadStatus.ONGOING.value, "claimed_at": self._now()}
        if claimed_by:
            patch["claimed_by"] = claimed_by

        matched = self.matched_contact
        lead = await self._decide(
            "answer",
            patch,
            PresenterState.ANSWERED,
            "Lead answered",
            "Error answering lead",
            user=claimed_by or "operator",
        )
        if lead is None:
            return None

        prefill = {"leadId": lead.id}
        for key, value in (
            ("phone", lead.phone),
            ("email", lead.email),
            ("name", lead.display_name),
            ("nif", lead.nif),
            ("source", lead.source),
        ):
            if value:
                prefill[key] = value
        if matched is not None:
            prefill["contactId"] = matched.id
        return prefill

    async def reject(self) -> Optional[Lead]:
        return await self._decide(
            "reject",
            {"status": LeadStatus.REJECTED.value},
            PresenterState.REJECTED,
            "Lead rejected",
            "Error rejecting lead",
        )

    async def mark_spam(self) -> Optional[Lead]:
        return await self._decide(
            "spam",
            {"status": LeadStatus.SPAM.value, "discarded_at": self._now()},
            PresenterState.SPAM,
            "Marked as advertising",
            "Error marking as advertising",
            success_variant="destructive",
        )

    def close(self) -> bool:
        """Dismiss without deciding: nothing is written anywhere"""
        if not self.visible:
            return False
        if self.busy:
            logger.info(f"Close ignored: {self.busy} in flight for lead {self.lead.id}")
            return False
        logger.info(f"Lead {self.lead.id} closed without decision")
        self._dismiss(PresenterState.CLOSED, self.lead.id)
        return True


class IncomingLeadListener:
    """
    Polls Directus for the latest incoming lead and hands it to the presenter.
    Dismissed ids are remembered for the session; the source event is left
    untouched so the lead stays available to other views.
    """

    def __init__(
        self,
        store: LeadStore,
        presenter: LeadPresenter,
        contact_lookup: Optional[ContactLookup] = None,
    ):
        self.store = store
        self.presenter = presenter
        self.contact_lookup = contact_lookup
        self.dismissed: Set[str] = set()
        self._active = True
        self._scheduler = None

        if presenter.on_dismiss is None:
            presenter.on_dismiss = self.dismiss

    def dismiss(self, lead_id: str):
        self.dismissed.add(lead_id)

    def start(self, scheduler, interval_seconds: int = LISTENER_INTERVAL_SECONDS):
        self._active = True
        self._scheduler = scheduler
        scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=interval_seconds),
            id=LISTENER_JOB_ID,
            name="Incoming lead listener",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def stop(self):
        self._active = False
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(LISTENER_JOB_ID)
            except JobLookupError:
                logger.debug("Listener job already removed")
            self._scheduler = None
        self.presenter.shutdown()

    async def tick(self) -> Optional[Lead]:
        if not self._active:
            return None
        try:
            lead = await self.store.fetch_latest_incoming_lead()
        except DirectusError as e:
            # Directus may be down in dev: keep polling quietly
            logger.debug(f"Incoming lead poll failed: {e.message}")
            return None
        if not self._active or lead is None:
            return None
        return await self.present(lead)

    async def present(self, lead: Lead) -> Optional[Lead]:
        """Show a lead unless already dismissed or another one is on screen"""
        if lead.id in self.dismissed:
            return None
        if self.presenter.visible:
            return None

        matched = None
        if self.contact_lookup is not None:
            matched = await self.contact_lookup.find_by_phone(lead.phone)
        # Re-check: the lookup awaited
        if self.presenter.visible:
            return None
        await self.presenter.show(lead, matched)
        return lead
