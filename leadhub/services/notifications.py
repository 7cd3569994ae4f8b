"""
Operator notifications (toasts)

Kept in memory for the console UI to poll; every notification is also logged.
"""

import uuid
import logging
from collections import deque
from typing import List, Optional

from leadhub.config import now_iso

logger = logging.getLogger("notifications")

MAX_NOTIFICATIONS = 50


class Notifier:

    def __init__(self, maxlen: int = MAX_NOTIFICATIONS):
        self._items = deque(maxlen=maxlen)

    def notify(self, title: str, description: Optional[str] = None, variant: str = "default") -> dict:
        """
        variant: default | destructive
        """
        item = {
            "id": str(uuid.uuid4()),
            "title": title,
            "description": description,
            "variant": variant,
            "created_at": now_iso(),
        }
        self._items.appendleft(item)
        if variant == "destructive":
            logger.warning(f"{title}: {description or ''}")
        else:
            logger.info(f"{title}: {description or ''}")
        return item

    def recent(self, limit: int = 20) -> List[dict]:
        return list(self._items)[:limit]
