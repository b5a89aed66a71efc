from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    pass


class Notifier:
    def notify(self, event: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class LogNotifier(Notifier):
    def notify(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("notify event=%s payload=%s", event, json.dumps(payload, sort_keys=True, default=str))


@dataclass(frozen=True)
class WebhookNotifier(Notifier):
    url: str
    timeout_seconds: int = 10

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        body = json.dumps({"event": event, "payload": payload}, default=str).encode("utf-8")
        req = urllib.request.Request(
            self.url,
            data=body,
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                resp.read()
        except urllib.error.HTTPError as e:
            raise NotificationError(f"Webhook returned HTTP {e.code} for {event}") from e
        except urllib.error.URLError as e:
            raise NotificationError(f"Webhook unreachable for {event}: {e.reason}") from e
        except (OSError, http.client.HTTPException) as e:
            # Timeouts and truncated reads surface from resp.read(), not urlopen.
            raise NotificationError(f"Webhook delivery failed for {event}: {e!r}") from e


def notifier_from_config(config: dict[str, Any]) -> Notifier:
    backend = (config.get("NOTIFY_BACKEND") or "log").strip().lower()
    if backend == "log":
        return LogNotifier()
    if backend == "webhook":
        url = (config.get("NOTIFY_WEBHOOK_URL") or "").strip()
        if not url:
            raise RuntimeError("NOTIFY_WEBHOOK_URL is required when NOTIFY_BACKEND=webhook.")
        return WebhookNotifier(url=url)
    raise RuntimeError(f"Unknown NOTIFY_BACKEND: {backend!r}")


def notify_safely(notifier: Notifier | None, event: str, payload: dict[str, Any]) -> None:
    """
    Fire-and-forget dispatch after a committed transition. Failures are logged,
    never raised: the document change already happened.
    """
    if notifier is None:
        return
    try:
        notifier.notify(event, payload)
    except NotificationError as e:
        logger.warning("Notification failed event=%s: %s", event, e)
    except Exception:
        logger.exception("Notifier crashed event=%s", event)
