"""
Leadhub - Missed-lead aggregation tests
Tests: merge into the existing missed record, in-place marking without identity,
attempt log cap, per-identity serialization.
Run: pytest tests/test_missed_aggregator.py -v
"""

import asyncio

from leadhub.models import Lead, LeadStatus, ATTEMPT_LOG_LIMIT
from leadhub.services.lead_store import LeadStore
from leadhub.services.missed_aggregator import MissedLeadAggregator

from tests.conftest import Clock


def _run(coro):
    """Run a coroutine in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _aggregator(directus, audit, clock=None):
    store = LeadStore(directus.client())
    return MissedLeadAggregator(store, audit=audit, now=clock or Clock())


def _incoming(directus, **fields):
    item = directus.seed("leads", status="incoming", **fields)
    return Lead.from_item(item)


# ═══════════════════════════════════════════════════════════════
# 1. MERGE
# ═══════════════════════════════════════════════════════════════

class TestMerge:

    def test_existing_missed_gets_one_more_attempt(self, directus, audit):
        existing = directus.seed(
            "leads",
            status="missed",
            dedupe_key="phone:912345678",
            attempt_count=3,
            attempt_log=[{"at": "2026-01-01T00:00:03Z"}, {"at": "2026-01-01T00:00:02Z"}, {"at": "2026-01-01T00:00:01Z"}],
            first_attempt_at="2026-01-01T00:00:01Z",
        )
        lead = _incoming(directus, phone="+351 912 345 678", source="phone")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.merged is True
        assert result.kept_id == str(existing["id"])
        assert result.deleted_id == lead.id
        assert result.attempt_count == 4

        missed = [l for l in directus.items("leads") if l["status"] == "missed"]
        assert len(missed) == 1
        assert missed[0]["attempt_count"] == 4
        assert missed[0]["first_attempt_at"] == "2026-01-01T00:00:01Z"
        assert missed[0]["attempt_log"][0]["source"] == "phone"
        assert len(missed[0]["attempt_log"]) == 4
        assert directus.get("leads", lead.id) is None

    def test_existing_without_count_counts_as_one(self, directus, audit):
        directus.seed("leads", status="missed", dedupe_key="phone:912345678")
        lead = _incoming(directus, phone="912345678")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.attempt_count == 2

    def test_email_identity_merges(self, directus, audit):
        existing = directus.seed("leads", status="missed", dedupe_key="email:a@b.com", attempt_count=1)
        lead = _incoming(directus, email=" A@B.com ")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.kept_id == str(existing["id"])
        assert result.dedupe_key == "email:a@b.com"

    def test_first_missed_becomes_the_record(self, directus, audit):
        lead = _incoming(directus, phone="912345678", source="whatsapp")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.merged is False
        assert result.kept_id == lead.id
        stored = directus.get("leads", lead.id)
        assert stored["status"] == LeadStatus.MISSED.value
        assert stored["dedupe_key"] == "phone:912345678"
        assert stored["attempt_count"] == 1
        assert stored["attempt_log"][0]["source"] == "whatsapp"
        assert stored["first_attempt_at"] == lead.date_created

    def test_other_identity_not_merged(self, directus, audit):
        directus.seed("leads", status="missed", dedupe_key="phone:111111111", attempt_count=5)
        lead = _incoming(directus, phone="912345678")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.merged is False
        assert len([l for l in directus.items("leads") if l["status"] == "missed"]) == 2

    def test_audit_records_merge(self, directus, audit):
        directus.seed("leads", status="missed", dedupe_key="phone:912345678", attempt_count=1)
        lead = _incoming(directus, phone="912345678")

        _run(_aggregator(directus, audit).mark_missed(lead))

        assert audit.actions() == ["lead_missed"]
        assert audit.events[0]["details"]["merged"] is True
        assert audit.events[0]["related"] == {"lead_id": lead.id}


# ═══════════════════════════════════════════════════════════════
# 2. NO IDENTITY
# ═══════════════════════════════════════════════════════════════

class TestNoIdentity:

    def test_marked_in_place_never_deleted(self, directus, audit):
        directus.seed("leads", status="missed", dedupe_key="", attempt_count=2)
        lead = _incoming(directus, display_name="Anonymous")

        result = _run(_aggregator(directus, audit).mark_missed(lead))

        assert result.merged is False
        assert result.kept_id == lead.id
        assert not [r for r in directus.requests if r["method"] == "DELETE"]
        stored = directus.get("leads", lead.id)
        assert stored["status"] == "missed"
        assert stored["attempt_count"] == 1
        assert len(stored["attempt_log"]) == 1

    def test_existing_log_kept(self, directus, audit):
        lead = _incoming(directus, attempt_count=2, attempt_log=[{"at": "x"}, {"at": "y"}])

        _run(_aggregator(directus, audit).mark_missed(lead))

        stored = directus.get("leads", lead.id)
        assert stored["attempt_log"] == [{"at": "x"}, {"at": "y"}]
        assert stored["attempt_count"] == 2


# ═══════════════════════════════════════════════════════════════
# 3. ATTEMPT LOG CAP
# ═══════════════════════════════════════════════════════════════

class TestAttemptLogCap:

    def test_forty_attempts_keep_thirty_newest(self, directus, audit):
        clock = Clock()
        aggregator = _aggregator(directus, audit, clock)

        async def scenario():
            for _ in range(40):
                lead = _incoming(directus, phone="912345678")
                await aggregator.mark_missed(lead)

        _run(scenario())

        missed = [l for l in directus.items("leads") if l["status"] == "missed"]
        assert len(missed) == 1
        log = missed[0]["attempt_log"]
        assert len(log) == ATTEMPT_LOG_LIMIT
        assert missed[0]["attempt_count"] == 40
        stamps = [entry["at"] for entry in log]
        assert stamps == sorted(stamps, reverse=True)
        assert stamps[0] == missed[0]["last_attempt_at"]


# ═══════════════════════════════════════════════════════════════
# 4. CONCURRENCY
# ═══════════════════════════════════════════════════════════════

class TestSameIdentityConcurrency:

    def test_parallel_timeouts_leave_one_missed_record(self, directus, audit):
        aggregator = _aggregator(directus, audit)
        leads = [_incoming(directus, phone="912345678") for _ in range(3)]

        async def scenario():
            return await asyncio.gather(*(aggregator.mark_missed(l) for l in leads))

        results = _run(scenario())

        missed = [l for l in directus.items("leads") if l["status"] == "missed"]
        assert len(missed) == 1
        assert missed[0]["attempt_count"] == 3
        assert sum(1 for r in results if r.merged) == 2
        assert aggregator._locks == {}
