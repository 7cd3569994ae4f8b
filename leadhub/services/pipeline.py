"""
Wiring of the lead pipeline services around one Directus client.

One instance per process (held on app.state); tests build their own with a
fake transport and in-memory collections.
"""

from typing import Callable, Optional

from leadhub.config import LEAD_POPUP_SECONDS
from leadhub.services.directus_client import DirectusClient
from leadhub.services.lead_store import LeadStore
from leadhub.services.missed_aggregator import MissedLeadAggregator
from leadhub.services.notifications import Notifier
from leadhub.services.contact_lookup import ContactLookup
from leadhub.services.lead_presenter import LeadPresenter, IncomingLeadListener
from leadhub.services.lead_bridge import LeadIntakeBridge
from leadhub.services.identity_map import IdentityMapStore
from leadhub.services.newsletter_sync import NewsletterSync
from leadhub.services.event_logger import log_event


class LeadPipeline:

    def __init__(
        self,
        client: Optional[DirectusClient] = None,
        calls_collection=None,
        audit: Callable = log_event,
        window_seconds: int = LEAD_POPUP_SECONDS,
        tick_seconds: float = 1.0,
    ):
        self.client = client or DirectusClient()
        self.notifier = Notifier()
        self.store = LeadStore(self.client)
        self.aggregator = MissedLeadAggregator(self.store, audit=audit)
        self.contact_lookup = ContactLookup(self.client)
        self.presenter = LeadPresenter(
            self.store,
            self.aggregator,
            self.notifier,
            window_seconds=window_seconds,
            tick_seconds=tick_seconds,
            audit=audit,
        )
        self.listener = IncomingLeadListener(self.store, self.presenter, self.contact_lookup)
        # A freshly bridged lead is offered to the listener right away
        self.bridge = LeadIntakeBridge(
            self.store,
            calls_collection=calls_collection,
            notifier=self.notifier,
            on_lead_created=self.listener.present,
            audit=audit,
        )
        self.identity_map = IdentityMapStore(self.client)
        self.sync = NewsletterSync(self.client, self.identity_map, audit=audit)

    def stop(self):
        self.bridge.stop()
        self.listener.stop()
