"""Email service using Resend for registration and OTP emails."""

import base64
import binascii
import html
import logging
import re
from typing import Any, Iterable

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Entitlement names that only exist for gateway testing
PLACEHOLDER_ENTITLEMENTS = frozenset({"Demo Payment", "Demo Event"})
DEFAULT_ENTITLEMENT = "General Registration"


def filter_entitlements(events: Iterable[str] | None) -> list[str]:
    """Drop blank, placeholder and duplicate entitlement names, keeping order."""
    seen: set[str] = set()
    result: list[str] = []
    for event in events or []:
        if not isinstance(event, str):
            continue
        name = event.strip()
        if not name or name in PLACEHOLDER_ENTITLEMENTS or name in seen:
            continue
        seen.add(name)
        result.append(name)
    return result


def attachment_filename(name: str | None) -> str:
    """Ticket attachment filename with non-alphanumerics stripped from the name."""
    cleaned = re.sub(r"[^a-zA-Z0-9]", "", name or "")
    return f"ticket-{cleaned or 'attendee'}.png"


class EmailService:
    """Service for sending transactional emails via Resend.

    Every send returns a result dict instead of raising, so a batch of sends
    can carry on past individual failures.
    """

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.event_name = settings.event_display_name
        self.frontend_url = settings.ticket_base_url

    def _send(self, params: dict[str, Any], kind: str, to_email: str) -> dict[str, Any]:
        try:
            response = resend.Emails.send(params)
            email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
            logger.info("%s email sent to %s, id: %s", kind, to_email, email_id)
            return {"success": True, "email_id": email_id}

        except Exception as e:
            logger.error("Failed to send %s email to %s: %s", kind, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_registration_confirmation(
        self,
        to_email: str,
        name: str | None,
        events: Iterable[str] | None,
        order_id: str | None = None,
        credential_image: str | None = None,
    ) -> dict[str, Any]:
        """Send the registration confirmation with the ticket attached.

        Args:
            to_email: Recipient email address.
            name: Attendee display name.
            events: Entitlements to list; placeholders are removed.
            order_id: Order the ticket belongs to.
            credential_image: Base64 PNG ticket, attached when present.

        Returns:
            dict: {"success": True, "email_id": ...} or {"success": False, "error": ...}.
        """
        display_name = name or "there"
        valid_events = filter_entitlements(events)
        events_text = ", ".join(valid_events) if valid_events else f"{DEFAULT_ENTITLEMENT} - {self.event_name}"
        ticket_url = (
            f"{self.frontend_url}/payment/success?order_id={order_id}" if order_id else f"{self.frontend_url}/ticket"
        )
        order_html = (
            f'<p style="font-size: 14px; color: #6b7280;">Order ID: {html.escape(order_id)}</p>' if order_id else ""
        )
        order_text = f"Order ID: {order_id}" if order_id else ""

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Registration Confirmed</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1f2937; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">Welcome to {html.escape(self.event_name)}!</h1>
    </div>

    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px;">Hi <strong>{html.escape(display_name)}</strong>, your registration is confirmed.</p>

        <p style="font-size: 14px;"><strong>Registered events:</strong> {html.escape(events_text)}</p>
        {order_html}

        <p style="font-size: 14px;">Your ticket QR code is attached to this email. Show it at the venue entrance.</p>

        <div style="text-align: center; margin: 30px 0;">
            <a href="{ticket_url}" style="background: #1f2937; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600;">
                View Ticket
            </a>
        </div>
    </div>
</body>
</html>
"""

        text_content = f"""
Welcome to {self.event_name}!

Hi {display_name}, your registration is confirmed.

Registered events: {events_text}
{order_text}

Your ticket QR code is attached. View your ticket online:
{ticket_url}
"""

        params: dict[str, Any] = {
            "from": self.from_email,
            "to": [to_email],
            "subject": f"Welcome to {self.event_name} - Registration Confirmed",
            "html": html_content,
            "text": text_content,
        }

        if credential_image:
            try:
                content = list(base64.b64decode(credential_image, validate=True))
            except (binascii.Error, ValueError) as e:
                logger.error("Invalid credential image for %s: %s", to_email, str(e))
                return {"success": False, "error": f"Invalid credential image: {e}"}
            params["attachments"] = [
                {
                    "filename": attachment_filename(name),
                    "content": content,
                    "content_type": "image/png",
                }
            ]
        else:
            logger.warning("No credential available to attach for %s", to_email)

        return self._send(params, "Registration", to_email)

    async def send_access_otp(
        self,
        to_email: str,
        otp: str,
        name: str | None = None,
    ) -> dict[str, Any]:
        """Send a ticket-access one-time code.

        Args:
            to_email: Recipient email address.
            otp: Numeric one-time code.
            name: Recipient display name (optional).

        Returns:
            dict: {"success": True, "email_id": ...} or {"success": False, "error": ...}.
        """
        display_name = name or "there"

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Your Ticket Access OTP</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="color: #1f2937;">Ticket Access OTP</h1>
    <p>Hi {html.escape(display_name)}, use this code to view your {html.escape(self.event_name)} tickets:</p>
    <div style="font-size: 32px; font-weight: 700; letter-spacing: 8px; text-align: center; padding: 20px; background: #f3f4f6; border-radius: 8px;">
        {html.escape(otp)}
    </div>
    <p><strong>This OTP is valid for 10 minutes only.</strong> Do not share it with anyone.</p>
</body>
</html>
"""

        text_content = f"""
Ticket Access OTP - {self.event_name}

Hi {display_name}, use this code to view your tickets: {otp}

This OTP is valid for 10 minutes only. Do not share it with anyone.
"""

        return self._send(
            {
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Your {self.event_name} Ticket Access OTP",
                "html": html_content,
                "text": text_content,
            },
            "OTP",
            to_email,
        )
