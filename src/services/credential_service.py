"""Ticket credential issuing service."""

import base64
import logging
from typing import Any

from src.core.config import get_settings
from src.core.qr import DEFAULT_QR_PARAMS, EncodingError, QRParams, encode_qr_png

logger = logging.getLogger(__name__)


class CredentialService:
    """Issues scannable ticket credentials for identities.

    A credential is a QR PNG (stored base64) encoding the ticket page URL for
    the order that first produced it. Once an identity holds one it is never
    regenerated, because the encoded order reference has already been sent
    out.
    """

    def __init__(self, params: QRParams = DEFAULT_QR_PARAMS) -> None:
        self.settings = get_settings()
        self.params = params

    def build_verification_url(self, order_id: str | None) -> str:
        """Build the URL a credential encodes.

        Args:
            order_id: Ledger order id, if known.

        Returns:
            str: Ticket page URL for the order, or the generic ticket page.
        """
        base_url = self.settings.ticket_base_url
        if order_id:
            return f"{base_url}/payment/success?order_id={order_id}"
        return f"{base_url}/ticket"

    def render(self, identity_key: str, order_id: str | None) -> str:
        """Render a fresh credential image.

        Args:
            identity_key: Durable key of the subject (identity id or email).
            order_id: Order the credential points at.

        Returns:
            str: Base64-encoded PNG.

        Raises:
            EncodingError: If the identity key is empty or encoding fails.
        """
        if not str(identity_key or "").strip():
            raise EncodingError("Identity key is required for credential generation")

        url = self.build_verification_url(order_id)
        png = encode_qr_png(url, self.params)
        logger.info("Credential rendered for %s -> %s", identity_key, url)
        return base64.b64encode(png).decode("ascii")

    def issue(self, identity: dict[str, Any], order: dict[str, Any] | None) -> tuple[str, bool]:
        """Issue a credential for an identity unless it already has one.

        Args:
            identity: Identity row (id and/or email required).
            order: Order row the credential should point at.

        Returns:
            Tuple of (base64 image, newly_issued).

        Raises:
            EncodingError: If the identity key is empty or encoding fails.
        """
        existing = identity.get("credential_image")
        if existing:
            logger.info("Credential already exists for %s", identity.get("email"))
            return existing, False

        identity_key = identity.get("id") or identity.get("email") or ""
        order_id = order.get("order_id") if order else None
        return self.render(str(identity_key), order_id), True
