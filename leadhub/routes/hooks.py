"""
Directus Flow receiver: contacts <-> newsletter_subscriptions sync

A Flow (event hook, non-blocking) posts
    {event, collection, key | keys, payload}
on items.create / items.update. The sync runs after the response, so the
originating write is never slowed down nor failed by it.
"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Header
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional

from leadhub.config import DIRECTUS_HOOK_TOKEN
from leadhub.routes.console import get_pipeline
from leadhub.routes.webhooks import check_token
from leadhub.services.newsletter_sync import NewsletterSync

logger = logging.getLogger("hooks")

router = APIRouter(prefix="/hooks", tags=["Directus hooks"])


class DirectusHookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    collection: str
    key: Optional[Any] = None
    keys: Optional[List[Any]] = None
    payload: Optional[Dict[str, Any]] = None

    def all_keys(self) -> List[Any]:
        if self.keys:
            return list(self.keys)
        return [self.key]


async def run_sync(sync: NewsletterSync, hook: DirectusHookEvent):
    for key in hook.all_keys():
        result = await sync.handle_event(hook.event, hook.collection, key, hook.payload)
        logger.info(f"Sync {hook.event} {hook.collection}:{key} -> {result.action}")


@router.post("/directus", status_code=202)
async def directus_hook(
    hook: DirectusHookEvent,
    background_tasks: BackgroundTasks,
    x_hook_token: Optional[str] = Header(None),
    pipeline=Depends(get_pipeline),
):
    check_token(DIRECTUS_HOOK_TOKEN, x_hook_token, "DIRECTUS_HOOK_TOKEN")

    background_tasks.add_task(run_sync, pipeline.sync, hook)
    return {"accepted": True, "event": hook.event, "collection": hook.collection}
