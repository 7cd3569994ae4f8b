"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CONTACTS <-> NEWSLETTER SYNC                                                ║
║                                                                              ║
║  Fired on items.create / items.update of either collection:                  ║
║  1. email (trim+lowercase) / phone (trim) from the record, both empty = noop ║
║  2. Target = record linked in the identity map, else the most recently       ║
║     updated record matching email OR phone                                   ║
║  3. Candidate = shared fields present on the record (+ aliases)              ║
║  4. Candidate equal to target (None == missing) -> NO WRITE                  ║
║     (this is what stops the two hooks from re-firing each other)             ║
║  5. Update target, or create it                                              ║
║  6. Successful write -> upsert identity map (both 90 / email 80 / phone 70)  ║
║                                                                              ║
║  Best-effort: nothing is raised, every outcome is a SyncResult               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from leadhub.config import (
    now_iso,
    DIRECTUS_CONTACTS_COLLECTION,
    DIRECTUS_NEWSLETTER_COLLECTION,
)
from leadhub.models import (
    SHARED_SYNC_FIELDS,
    CONTACT_TO_NEWSLETTER_ALIASES,
    NEWSLETTER_TO_CONTACT_ALIASES,
    MatchedBy,
    MATCH_CONFIDENCE,
)
from leadhub.services.directus_client import DirectusClient, DirectusError
from leadhub.services.identity import normalize_email
from leadhub.services.identity_map import IdentityMapStore, normalize_map_phone
from leadhub.services.event_logger import log_event

logger = logging.getLogger("newsletter_sync")

SYNC_EVENTS = ("items.create", "items.update")

# Sync actions
ACTION_IGNORED = "ignored"    # event/collection not handled
ACTION_NOOP = "noop"          # no email nor phone
ACTION_SKIPPED = "skipped"    # target already up to date
ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_FAILED = "failed"


class SyncResult:
    """Outcome of one propagation"""

    def __init__(
        self,
        action: str,
        source_collection: Optional[str] = None,
        target_collection: Optional[str] = None,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
        identity_map_id: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self.action = action
        self.source_collection = source_collection
        self.target_collection = target_collection
        self.source_id = source_id
        self.target_id = target_id
        self.identity_map_id = identity_map_id
        self.error = error

    @property
    def wrote(self) -> bool:
        return self.action in (ACTION_CREATED, ACTION_UPDATED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "source_collection": self.source_collection,
            "target_collection": self.target_collection,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "identity_map_id": self.identity_map_id,
            "error": self.error,
        }


def values_equal(a: Any, b: Any) -> bool:
    """None and missing are the same value"""
    if a is None or b is None:
        return a is None and b is None
    return a == b


def has_diff(candidate: Dict[str, Any], existing: Optional[Dict[str, Any]], fields: Iterable[str]) -> bool:
    """True when any known field of the candidate differs from the existing record"""
    if existing is None:
        return True
    for field in fields:
        if field not in candidate:
            continue
        if not values_equal(candidate.get(field), existing.get(field)):
            return True
    return False


def build_candidate(record: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    """
    Shared fields present on the source record, renamed for the target.
    email/phone are normalized and only carried when non-empty, so a sync
    never blanks the identity of the target.
    """
    candidate: Dict[str, Any] = {}
    for field in SHARED_SYNC_FIELDS:
        if field in record:
            candidate[field] = record[field]
    for source_field, target_field in aliases.items():
        if source_field in record:
            candidate[target_field] = record[source_field]

    email = normalize_email(record.get("email"))
    phone = normalize_map_phone(record.get("phone"))
    candidate.pop("email", None)
    candidate.pop("phone", None)
    if email:
        candidate["email"] = email
    if phone:
        candidate["phone"] = phone
    return candidate


def comparable(record: Dict[str, Any]) -> Dict[str, Any]:
    """Record as the candidate sees it: email compared case-insensitively"""
    if not record.get("email"):
        return record
    return {**record, "email": normalize_email(record["email"])}


def resolve_match(email: str, phone: str) -> MatchedBy:
    if email and phone:
        return MatchedBy.BOTH
    return MatchedBy.EMAIL if email else MatchedBy.PHONE


class NewsletterSync:

    def __init__(
        self,
        client: DirectusClient,
        identity_map: Optional[IdentityMapStore] = None,
        contacts_collection: str = DIRECTUS_CONTACTS_COLLECTION,
        newsletter_collection: str = DIRECTUS_NEWSLETTER_COLLECTION,
        audit: Callable = log_event,
        now: Callable[[], str] = now_iso,
    ):
        self.client = client
        self.identity_map = identity_map or IdentityMapStore(client)
        self.contacts_collection = contacts_collection
        self.newsletter_collection = newsletter_collection
        self.audit = audit
        self._now = now

    def _direction(self, collection: str):
        """(target collection, aliases) for a source collection, None when not synced"""
        if collection == self.contacts_collection:
            return self.newsletter_collection, CONTACT_TO_NEWSLETTER_ALIASES
        if collection == self.newsletter_collection:
            return self.contacts_collection, NEWSLETTER_TO_CONTACT_ALIASES
        return None

    async def handle_event(
        self,
        event: str,
        collection: str,
        key: Optional[Any],
        payload: Optional[Dict[str, Any]],
    ) -> SyncResult:
        """Entry point for a Directus items.create / items.update action"""
        direction = self._direction(collection)
        if event not in SYNC_EVENTS or direction is None:
            return SyncResult(ACTION_IGNORED, source_collection=collection)

        target_collection, aliases = direction
        source_id = str(key) if key is not None else None
        try:
            return await self.sync(collection, target_collection, aliases, source_id, payload or {})
        except Exception as e:
            logger.exception(f"Sync {collection}:{source_id} -> {target_collection} failed")
            return SyncResult(
                ACTION_FAILED,
                source_collection=collection,
                target_collection=target_collection,
                source_id=source_id,
                error=str(e),
            )

    async def sync(
        self,
        source_collection: str,
        target_collection: str,
        aliases: Dict[str, str],
        source_id: Optional[str],
        payload: Dict[str, Any],
    ) -> SyncResult:
        record = dict(payload)

        # An update carries only the changed fields: identity comes from the stored record
        if source_id and not (record.get("email") or record.get("phone")):
            stored = await self.client.read_item(source_collection, source_id)
            if stored:
                record = {**stored, **payload}

        email = normalize_email(record.get("email"))
        phone = normalize_map_phone(record.get("phone"))
        result = SyncResult(
            ACTION_NOOP,
            source_collection=source_collection,
            target_collection=target_collection,
            source_id=source_id,
        )
        if not email and not phone:
            return result

        candidate = build_candidate(record, aliases)
        existing = await self._find_target(target_collection, email, phone)
        known_fields = list(SHARED_SYNC_FIELDS) + list(aliases.values())

        if existing is not None and not has_diff(candidate, comparable(existing), known_fields):
            result.action = ACTION_SKIPPED
            result.target_id = str(existing.get("id"))
            logger.debug(f"{source_collection}:{source_id} already in sync with {target_collection}:{result.target_id}")
            return result

        if existing is not None and existing.get("id") is not None:
            item = await self.client.update_item(target_collection, existing["id"], candidate)
            result.action = ACTION_UPDATED
            result.target_id = str(item.get("id") or existing["id"])
        else:
            item = await self.client.create_item(target_collection, candidate)
            result.action = ACTION_CREATED
            result.target_id = str(item["id"]) if item.get("id") is not None else None

        logger.info(f"Synced {source_collection}:{source_id} -> {target_collection}:{result.target_id} ({result.action})")

        result.identity_map_id = await self._record_identity(result, email, phone)
        await self.audit(
            f"sync_{result.action}",
            "contact" if target_collection == self.contacts_collection else "newsletter_subscription",
            result.target_id or "",
            details={"fields": sorted(candidate.keys())},
            related={"source_collection": source_collection, "source_id": source_id},
        )
        return result

    async def _find_target(self, collection: str, email: str, phone: str) -> Optional[Dict[str, Any]]:
        """The mapped record when the identity map knows it, else the most recently updated match"""
        mapped = await self._find_mapped(collection, email, phone)
        if mapped is not None:
            return mapped

        params: Dict[str, Any] = {"limit": 1, "sort": "-date_updated", "fields": "*"}
        i = 0
        if email:
            params[f"filter[_or][{i}][email][_eq]"] = email
            i += 1
        if phone:
            params[f"filter[_or][{i}][phone][_eq]"] = phone
        rows = await self.client.read_items(collection, params)
        return rows[0] if rows else None

    async def _find_mapped(self, collection: str, email: str, phone: str) -> Optional[Dict[str, Any]]:
        try:
            entry = await self.identity_map.find(email=email, phone=phone)
        except DirectusError as e:
            logger.warning(f"Identity map lookup failed ({email or phone}): {e.message}")
            return None
        if entry is None:
            return None

        target_id = entry.directus_contact_id if collection == self.contacts_collection else entry.subscription_id
        if not target_id:
            return None
        return await self.client.read_item(collection, target_id)

    async def _record_identity(self, result: SyncResult, email: str, phone: str) -> Optional[str]:
        """Upsert the identity map; a failure here never undoes the sync"""
        if result.source_collection == self.contacts_collection:
            contact_id, subscription_id = result.source_id, result.target_id
        else:
            contact_id, subscription_id = result.target_id, result.source_id

        matched_by = resolve_match(email, phone)
        try:
            entry = await self.identity_map.upsert(
                email=email,
                phone=phone,
                directus_contact_id=contact_id,
                subscription_id=subscription_id,
                matched_by=matched_by.value,
                confidence=MATCH_CONFIDENCE[matched_by],
                last_verified_at=self._now(),
            )
        except (DirectusError, ValueError) as e:
            logger.warning(f"Identity map upsert failed ({email or phone}): {str(e)}")
            return None
        return entry.id
