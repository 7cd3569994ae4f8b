"""
Shared fakes for the lead pipeline tests.

- FakeDirectus: in-memory Directus /items API behind httpx.MockTransport
- FakeCollection: the few motor collection calls the bridge and webhooks use
- AuditRecorder: stands in for event_logger.log_event (no MongoDB)
"""

import copy
import json
import re
import pytest
import httpx

from leadhub.services.directus_client import DirectusClient, TokenStore

ITEM_PATH = re.compile(r"^/items/([^/]+)(?:/([^/]+))?$")
FILTER_EQ = re.compile(r"^filter\[([^\]]+)\]\[_eq\]$")
FILTER_OR_EQ = re.compile(r"^filter\[_or\]\[(\d+)\]\[([^\]]+)\]\[_eq\]$")


def _matches(item, value, field):
    current = item.get(field)
    return current is not None and str(current) == value


def _sort_rows(rows, sort):
    for part in reversed([s for s in sort.split(",") if s]):
        desc = part.startswith("-")
        field = part.lstrip("-")
        present = [r for r in rows if r.get(field) is not None]
        missing = [r for r in rows if r.get(field) is None]
        present.sort(key=lambda r: r[field], reverse=desc)
        rows = present + missing if desc else missing + present
    return rows


class FakeDirectus:
    """
    Minimal Directus: filter[field][_eq], filter[_or][i][field][_eq], sort,
    limit; ids are integers like a default Directus collection.
    """

    def __init__(self):
        self.collections = {}
        self.requests = []
        self.failures = {}
        self._next_id = 1
        self._clock = 0

    # ---------- test helpers ----------

    def tick_clock(self):
        self._clock += 1
        return f"2026-01-01T00:{self._clock // 60:02d}:{self._clock % 60:02d}Z"

    def seed(self, collection, **fields):
        item = dict(fields)
        if "id" not in item:
            item["id"] = self._next_id
            self._next_id += 1
        stamp = self.tick_clock()
        item.setdefault("date_created", stamp)
        item.setdefault("date_updated", stamp)
        self.collections.setdefault(collection, []).append(item)
        return copy.deepcopy(item)

    def items(self, collection):
        return copy.deepcopy(self.collections.get(collection, []))

    def get(self, collection, item_id):
        for item in self.collections.get(collection, []):
            if str(item["id"]) == str(item_id):
                return copy.deepcopy(item)
        return None

    def fail(self, method, collection, status=500, body=None):
        self.failures[(method, collection)] = (status, body if body is not None else {"errors": [{"message": "boom"}]})

    def writes(self, collection=None):
        return [
            r for r in self.requests
            if r["method"] in ("POST", "PATCH", "DELETE")
            and (collection is None or r["collection"] == collection)
        ]

    def client(self, token="test-token"):
        return DirectusClient(
            base_url="http://directus.test",
            token_store=TokenStore(fallback_token=token),
            transport=httpx.MockTransport(self.handler),
        )

    # ---------- transport ----------

    def handler(self, request: httpx.Request) -> httpx.Response:
        m = ITEM_PATH.match(request.url.path)
        if not m:
            return httpx.Response(404, json={"errors": [{"message": "Route not found"}]})
        collection, item_id = m.group(1), m.group(2)
        params = dict(request.url.params)
        body = json.loads(request.content) if request.content else None
        self.requests.append({
            "method": request.method,
            "collection": collection,
            "id": item_id,
            "params": params,
            "json": body,
            "auth": request.headers.get("authorization"),
        })

        failure = self.failures.get((request.method, collection))
        if failure:
            status, payload = failure
            if isinstance(payload, str):
                return httpx.Response(status, text=payload)
            return httpx.Response(status, json=payload)

        rows = self.collections.setdefault(collection, [])

        if request.method == "GET" and item_id is None:
            return httpx.Response(200, json={"data": self._query(rows, params)})

        if request.method == "GET":
            item = self.get(collection, item_id)
            if item is None:
                return httpx.Response(403, json={"errors": [{"message": "Forbidden"}]})
            return httpx.Response(200, json={"data": item})

        if request.method == "POST":
            return httpx.Response(200, json={"data": self.seed(collection, **(body or {}))})

        target = next((r for r in rows if str(r["id"]) == str(item_id)), None)
        if target is None:
            return httpx.Response(403, json={"errors": [{"message": "Forbidden"}]})

        if request.method == "PATCH":
            target.update(body or {})
            target["date_updated"] = self.tick_clock()
            return httpx.Response(200, json={"data": copy.deepcopy(target)})

        if request.method == "DELETE":
            rows.remove(target)
            return httpx.Response(204)

        return httpx.Response(405)

    def _query(self, rows, params):
        eq = {}
        ors = {}
        for key, value in params.items():
            m = FILTER_EQ.match(key)
            if m:
                eq[m.group(1)] = value
                continue
            m = FILTER_OR_EQ.match(key)
            if m:
                ors[int(m.group(1))] = (m.group(2), value)

        result = [r for r in rows if all(_matches(r, v, f) for f, v in eq.items())]
        if ors:
            result = [r for r in result if any(_matches(r, v, f) for f, v in ors.values())]
        if params.get("sort"):
            result = _sort_rows(result, params["sort"])
        limit = int(params.get("limit", 100))
        if limit >= 0:
            result = result[:limit]
        return copy.deepcopy(result)


class FakeCollection:
    """In-memory stand-in for a motor collection"""

    def __init__(self, docs=None):
        self.docs = [dict(d) for d in (docs or [])]
        self.fail_insert = False

    async def find_one(self, query, projection=None, sort=None):
        rows = [d for d in self.docs if all(d.get(k) == v for k, v in query.items())]
        for field, direction in reversed(sort or []):
            rows.sort(key=lambda d: d.get(field) or "", reverse=direction < 0)
        if not rows:
            return None
        doc = dict(rows[0])
        doc.pop("_id", None)
        return doc

    async def update_one(self, query, update):
        for d in self.docs:
            if all(d.get(k) == v for k, v in query.items()):
                d.update(update.get("$set", {}))
                return

    async def insert_one(self, doc):
        if self.fail_insert:
            raise RuntimeError("insert refused")
        doc["_id"] = f"oid-{len(self.docs) + 1}"
        self.docs.append(dict(doc))


class AuditRecorder:

    def __init__(self):
        self.events = []

    async def __call__(self, action, entity_type, entity_id, user="system", details=None, related=None):
        self.events.append({
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user": user,
            "details": details or {},
            "related": related or {},
        })

    def actions(self):
        return [e["action"] for e in self.events]


class Clock:
    """Strictly increasing ISO timestamps"""

    def __init__(self):
        self.n = 0

    def __call__(self):
        self.n += 1
        return f"2026-02-01T{self.n // 3600:02d}:{(self.n // 60) % 60:02d}:{self.n % 60:02d}Z"


@pytest.fixture
def directus():
    return FakeDirectus()


@pytest.fixture
def audit():
    return AuditRecorder()


@pytest.fixture
def clock():
    return Clock()
