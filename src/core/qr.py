"""QR code encoding for ticket credentials."""

import io
import logging
from dataclasses import dataclass

import segno

logger = logging.getLogger(__name__)


class EncodingError(Exception):
    """Raised when a credential payload cannot be encoded."""


@dataclass(frozen=True)
class QRParams:
    """Fixed visual parameters for ticket QR codes.

    Dark modules on a white background so the code still scans when the
    ticket is opened in a dark-mode mail client.
    """

    error: str = "m"
    border: int = 2
    scale: int = 10
    dark: str = "#000000"
    light: str = "#FFFFFF"


DEFAULT_QR_PARAMS = QRParams()


def encode_qr_png(data: str, params: QRParams = DEFAULT_QR_PARAMS) -> bytes:
    """Encode a string as a PNG QR code.

    Args:
        data: Payload to encode, normally an absolute URL.
        params: Visual parameters.

    Returns:
        bytes: PNG image bytes.

    Raises:
        EncodingError: If data is empty or the encoder rejects it.
    """
    if not isinstance(data, str) or not data.strip():
        raise EncodingError("Empty data provided for QR code generation")

    try:
        qr = segno.make(data, error=params.error, micro=False)
        buffer = io.BytesIO()
        qr.save(
            buffer,
            kind="png",
            scale=params.scale,
            border=params.border,
            dark=params.dark,
            light=params.light,
        )
    except (segno.DataOverflowError, ValueError) as e:
        logger.error("QR encoding failed for payload of length %d: %s", len(data), str(e))
        raise EncodingError(f"QR code generation failed: {e}") from e

    png = buffer.getvalue()
    logger.debug("QR code generated, %d bytes", len(png))
    return png
