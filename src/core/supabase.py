"""Supabase client singleton and store error helpers."""

from functools import lru_cache
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.core.config import get_settings

# Postgres SQLSTATE for unique_violation, surfaced by PostgREST as the error code
UNIQUE_VIOLATION = "23505"


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Every
    write in this service goes through the ledger, identity and team
    services, so the client is never handed to request code directly.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


def is_unique_violation(error: APIError) -> bool:
    """Check whether a PostgREST error is a duplicate-key insert."""
    return str(getattr(error, "code", "")) == UNIQUE_VIOLATION


def first_row(response: Any) -> dict[str, Any] | None:
    """Return the first row of a query response, or None.

    maybe_single() returns None instead of a response when no row matches,
    and insert/update responses carry a list, so both shapes are handled.
    """
    if response is None or not response.data:
        return None
    data = response.data
    if isinstance(data, list):
        return data[0] if data else None
    return data


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Performs a simple query to verify database connectivity.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table("events").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
