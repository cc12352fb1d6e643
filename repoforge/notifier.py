"""User-visible alerts, with optional webhook delivery."""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from .models import Alert

logger = logging.getLogger(__name__)


class Notifier:
    """Collect workflow alerts and forward subscribed events to a webhook."""

    def __init__(
        self,
        webhook_url: str = "",
        events: list[str] | None = None,
        on_alert: Callable[[Alert], None] | None = None,
    ):
        self.webhook_url = webhook_url
        self.events = events or []
        self.on_alert = on_alert
        self.alerts: list[Alert] = []

    @property
    def latest(self) -> Alert | None:
        return self.alerts[-1] if self.alerts else None

    async def alert(self, level: str, message: str, event: str = "") -> Alert:
        """Record an alert; post it to the webhook when *event* is subscribed."""
        alert = Alert(level=level, message=message)
        self.alerts.append(alert)
        log = logger.error if level == "error" else logger.info
        log("%s", message)
        if self.on_alert is not None:
            self.on_alert(alert)
        if event:
            await self._post(event, alert)
        return alert

    async def _post(self, event: str, alert: Alert) -> None:
        if not self.webhook_url or event not in self.events:
            return

        payload = {"event": event, "level": alert.level, "message": alert.message}
        try:
            async with httpx.AsyncClient() as client:
                await client.post(self.webhook_url, json=payload, timeout=10)
        except httpx.HTTPError as exc:
            # Delivery failure must not affect the workflow
            logger.warning("Webhook delivery failed for %s: %s", event, exc)
