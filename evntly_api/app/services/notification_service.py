"""
Registration confirmation emails sent through the Resend API.

Every attempt is recorded in the ``notifications`` table
(``pending`` then ``sent`` or ``failed``).  Delivery problems raise
``ConfigurationError`` or ``NotificationError``; callers log and
swallow them because a confirmation email never decides the outcome
of a booking.
"""

import html
import logging
from typing import Any, Mapping, Optional

import httpx

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import format_timestamp, get_connection, utcnow
from evntly_api.app.core.exceptions import ConfigurationError, NotificationError
from evntly_api.app.services.activity_service import json_column

logger = logging.getLogger(__name__)


def registration_subject(activity_name: str) -> str:
    return f"Registration Confirmed - {activity_name}"


def render_registration_email(
    user_name: str,
    activity_name: str,
    organization_name: str,
    ticket_count: int,
    venue_name: Optional[str] = None,
    additional_info: Any = None,
) -> str:
    """Return the HTML body of the confirmation email.

    ``additional_info`` is the activity's free-form extra information:
    a mapping becomes a table of its entries, a list becomes bullet
    points and anything else one paragraph.  All interpolated values
    are escaped.
    """
    rows = [
        ("Activity", activity_name),
        ("Tickets", str(ticket_count)),
        ("Registered on", utcnow().strftime("%B %d, %Y %H:%M UTC")),
    ]
    if venue_name:
        rows.append(("Venue", venue_name))
    table = "\n".join(
        f"<tr><td><strong>{html.escape(label)}</strong></td><td>{html.escape(value)}</td></tr>"
        for label, value in rows
    )
    return (
        "<!DOCTYPE html><html><body>"
        f"<h1>You're registered!</h1>"
        f"<p>Hi {html.escape(user_name)},</p>"
        f"<p>Your registration with {html.escape(organization_name)} is confirmed.</p>"
        f"<table>{table}</table>"
        f"{render_additional_info(additional_info)}"
        f"<p>See you there,<br>{html.escape(organization_name)}</p>"
        "</body></html>"
    )


def render_additional_info(additional_info: Any) -> str:
    if additional_info is None or additional_info in ("", {}, []):
        return ""
    if isinstance(additional_info, dict):
        body = "<table>" + "".join(
            f"<tr><td><strong>{html.escape(str(label))}</strong></td><td>{html.escape(str(value))}</td></tr>"
            for label, value in additional_info.items()
        ) + "</table>"
    elif isinstance(additional_info, list):
        body = "<ul>" + "".join(f"<li>{html.escape(str(item))}</li>" for item in additional_info) + "</ul>"
    else:
        body = f"<p>{html.escape(str(additional_info))}</p>"
    return f"<h3>Additional information</h3>{body}"


class ResendNotifier:
    """Sends confirmation emails with the organizer's own Resend API key.

    Parameters
    ----------
    api_url : Optional[str]
        Base URL of the Resend API.
    timeout : Optional[float]
        Request timeout in seconds.
    transport : Optional[httpx.AsyncBaseTransport]
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = (api_url or settings.resend_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.mail_timeout
        self.transport = transport

    async def send_registration_confirmation(
        self,
        organizer: Mapping[str, Any],
        user: Mapping[str, Any],
        activity: Mapping[str, Any],
        ticket_count: int,
    ) -> Optional[str]:
        """Email the user that their registration is confirmed.

        Returns the provider message id.  Users without an email
        address are skipped and ``None`` is returned.
        """
        if not user.get("email"):
            logger.info("User %s has no email address; skipping confirmation", user.get("id"))
            return None
        notification_id = self._record(user.get("id"), "registration_confirmation")
        try:
            api_key = organizer.get("resend_api_key")
            if not api_key:
                raise ConfigurationError(
                    f"Mail provider API key not configured for organizer {organizer.get('id')}"
                )
            sender = organizer.get("system_email") or organizer.get("organizer_email")
            payload = {
                "from": f"{organizer.get('organization_name')} <{sender}>",
                "to": [user["email"]],
                "subject": registration_subject(activity["name"]),
                "html": render_registration_email(
                    user_name=f"{user.get('first_name', '')} {user.get('last_name', '')}".strip(),
                    activity_name=activity["name"],
                    organization_name=organizer.get("organization_name") or "",
                    ticket_count=ticket_count,
                    venue_name=activity.get("venue_name"),
                    additional_info=json_column(activity.get("additional_info"), None),
                ),
                "reply_to": organizer.get("organizer_email"),
            }
            try:
                async with httpx.AsyncClient(
                    base_url=self.api_url, timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.post(
                        "/emails", json=payload, headers={"Authorization": f"Bearer {api_key}"}
                    )
            except httpx.HTTPError as e:
                raise NotificationError(f"Mail provider unreachable: {e}") from e
            if response.status_code >= 400:
                raise NotificationError(f"Mail provider rejected message ({response.status_code}): {response.text}")
            message_id = response.json().get("id")
        except (ConfigurationError, NotificationError) as e:
            self._finish(notification_id, "failed", error_message=str(e))
            raise
        self._finish(notification_id, "sent", provider_message_id=message_id)
        logger.info("Sent confirmation %s to user %s for activity %s", message_id, user.get("id"), activity.get("id"))
        return message_id

    @staticmethod
    def _record(user_id: Optional[int], reason: str) -> int:
        conn = get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO notifications (user_id, reason, status) VALUES (?, ?, 'pending')",
                (user_id, reason),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    @staticmethod
    def _finish(
        notification_id: int,
        status: str,
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        now = format_timestamp(utcnow())
        conn = get_connection()
        try:
            conn.execute(
                """
                UPDATE notifications
                SET status = ?, provider_message_id = ?, error_message = ?, sent_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (status, provider_message_id, error_message, now if status == "sent" else None, now, notification_id),
            )
            conn.commit()
        finally:
            conn.close()


async def notify_quietly(notifier: Any, organizer: Mapping[str, Any], user: Mapping[str, Any],
                         activity: Mapping[str, Any], ticket_count: int) -> None:
    """Send a confirmation, logging instead of raising on failure."""
    if notifier is None:
        return
    try:
        await notifier.send_registration_confirmation(organizer, user, activity, ticket_count)
    except (ConfigurationError, NotificationError) as e:
        logger.error("Confirmation email for user %s failed: %s", user.get("id"), e)
    except Exception:
        logger.exception("Unexpected error sending confirmation email to user %s", user.get("id"))
