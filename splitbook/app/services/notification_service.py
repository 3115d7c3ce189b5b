"""
services/notification_service.py — Best-effort push delivery (Expo push API).

The notifier is a Flask extension object (see extensions.py): it owns a small
process-local thread pool so a slow push endpoint never holds up the request
that triggered it. With PUSH_WORKERS = 0 delivery runs inline, which is what
the test config uses.

Delivery is best-effort by contract:
  - An address that is not an Expo push token is skipped with a log line.
  - Any transport or HTTP failure is logged and swallowed. It never turns
    into a ledger failure and it is never retried.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests

logger = logging.getLogger(__name__)

_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")


def is_expo_push_token(value: str | None) -> bool:
    return bool(value) and _EXPO_TOKEN_RE.match(value) is not None


class PushNotifier:
    """Notification sink: notify(push_address, title, body, metadata)."""

    def __init__(self, app=None) -> None:
        self.enabled = False
        self.url = ""
        self.timeout = 10
        self._executor: ThreadPoolExecutor | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.enabled = bool(app.config.get("PUSH_NOTIFICATIONS_ENABLED", False))
        self.url = app.config.get("EXPO_PUSH_URL", "")
        self.timeout = app.config.get("PUSH_TIMEOUT_SECONDS", 10)

        self.shutdown()
        workers = int(app.config.get("PUSH_WORKERS", 0) or 0)
        self._executor = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push")
            if workers > 0 else None
        )
        app.extensions["push_notifier"] = self

    def notify(
            self,
            push_address: str | None,
            title: str,
            body: str,
            metadata: dict[str, Any] | None = None,
    ) -> None:
        if not self.enabled:
            logger.debug("Push disabled; dropping notification %r", title)
            return
        if not is_expo_push_token(push_address):
            logger.info("Skipping push: %r is not an Expo push token", push_address)
            return

        message = {
            "to": push_address,
            "sound": "default",
            "title": title,
            "body": body,
            "data": metadata or {},
        }
        if self._executor is None:
            self._deliver(message)
        else:
            self._executor.submit(self._deliver, message)

    def _deliver(self, message: dict[str, Any]) -> None:
        try:
            response = requests.post(
                self.url,
                json=[message],
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException:
            logger.exception("Push delivery to %s failed", message["to"])
            return
        logger.info("Push notification sent to %s", message["to"])

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
