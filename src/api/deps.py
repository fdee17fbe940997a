"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Request

from src.api.middleware.error_handler import RateLimitError
from src.core.rate_limiter import RateLimitTier, get_rate_limiter


def get_client_ip(request: Request) -> str:
    """Best-effort client IP, honouring the first X-Forwarded-For hop.

    Args:
        request: FastAPI request object.

    Returns:
        str: Client IP address, or "unknown".
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_request_metadata(request: Request) -> dict[str, str | None]:
    """Request metadata stored on new orders."""
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": get_client_ip(request),
    }


ClientIP = Annotated[str, Depends(get_client_ip)]
RequestMetadata = Annotated[dict[str, str | None], Depends(get_request_metadata)]


async def _enforce(tier: RateLimitTier, client_ip: str, message: str) -> None:
    allowed, _, retry_after = await get_rate_limiter().check_and_increment(client_ip, tier)
    if not allowed:
        raise RateLimitError(message=message, retry_after=retry_after, limit=tier.max_requests)


# Rate limiting dependencies


async def check_general_rate_limit(client_ip: ClientIP) -> None:
    """Apply the general per-IP budget.

    Raises:
        RateLimitError: If the client has exceeded the budget.
    """
    limiter = get_rate_limiter()
    await _enforce(
        limiter.config.general,
        client_ip,
        "Too many requests from this IP, please try again later.",
    )


async def check_checkout_rate_limit(client_ip: ClientIP) -> None:
    """Apply the stricter per-IP budget for order creation.

    Raises:
        RateLimitError: If the client has exceeded the budget.
    """
    limiter = get_rate_limiter()
    await _enforce(
        limiter.config.checkout,
        client_ip,
        "Too many checkout attempts from this IP, please try again after an hour.",
    )


# Type aliases for rate limit dependencies
GeneralRateLimit = Annotated[None, Depends(check_general_rate_limit)]
CheckoutRateLimit = Annotated[None, Depends(check_checkout_rate_limit)]
