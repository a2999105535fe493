"""
Deliver staff notifications to a webhook (NOTIFY_WEBHOOK_URL).
If the webhook is not configured the message is logged and dropped.
"""
import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)


def send_notification(title: str, content: str) -> bool:
    """POST ``{"title", "content"}`` to the webhook. Returns True if it was accepted."""
    url = (current_app.config.get("NOTIFY_WEBHOOK_URL") or "").strip()
    if not url:
        logger.info("NOTIFY_WEBHOOK_URL not set; dropping notification %r: %s", title, content)
        return False
    try:
        r = requests.post(url, json={"title": title, "content": content}, timeout=10)
    except requests.RequestException as e:
        logger.warning("Notification %r could not be delivered: %s", title, e)
        return False
    if not r.ok:
        logger.warning("Notification %r rejected with HTTP %s", title, r.status_code)
        return False
    return True
