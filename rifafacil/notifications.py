import logging

import requests

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Nova Reserva na Rifa!"
NOTIFICATION_TIMEOUT_SECONDS = 5


def send_admin_notification(url: str | None, message: str) -> bool:
    """POST a push notification to the administrator's ntfy topic.

    Fire-and-forget: failures are logged and reported as False, never raised,
    so a reservation is never undone by a notification problem.
    """
    if not url:
        logger.debug("Notification URL not configured, skipping: %s", message)
        return False
    try:
        response = requests.post(
            url,
            data=message.encode("utf-8"),
            headers={
                "Title": NOTIFICATION_TITLE,
                "Priority": "high",
                "Tags": "tada,moneybag",
            },
            timeout=NOTIFICATION_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to send admin notification: %s", exc)
        return False
    return True
