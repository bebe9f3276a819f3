"""Process-lifetime cache of discovered webhook URLs."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class WebhookUrlCache:
    """Map of workflow id to webhook URL.

    Last write wins. Entries live until ``clear`` is called; there is no
    expiry. A lock guards the map so the cache can be shared with threads.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._urls: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def set(self, workflow_id: str, url: str) -> None:
        with self._lock:
            self._urls[workflow_id] = url
        logger.debug(f"Cached webhook URL for {workflow_id}: {url}")

    def get(self, workflow_id: str) -> Optional[str]:
        with self._lock:
            return self._urls.get(workflow_id)

    def all(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._urls)

    def clear(self) -> None:
        with self._lock:
            self._urls.clear()
