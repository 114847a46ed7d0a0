"""
Supabase client lifecycle.

The client is created once at startup (FastAPI lifespan or Celery
worker_process_init) with init_supabase() and released with
close_supabase(). Code that runs outside either lifecycle (scripts,
one-off tasks) uses supabase_session() for scoped acquisition.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from supabase import Client, create_client

from reputation.core.config import get_settings

logger = logging.getLogger(__name__)

_supabase_client: Optional[Client] = None


def _create_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


def init_supabase() -> Client:
    """Create the shared Supabase client. Safe to call more than once."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = _create_client()
        logger.info("Supabase client initialized")
    return _supabase_client


def close_supabase() -> None:
    """Release the shared Supabase client."""
    global _supabase_client
    if _supabase_client is not None:
        _supabase_client = None
        logger.info("Supabase client released")


def get_supabase() -> Client:
    """Get the shared Supabase client.

    Raises:
        RuntimeError: If init_supabase() has not been called
    """
    if _supabase_client is None:
        raise RuntimeError("Supabase not initialized. Call init_supabase() first.")
    return _supabase_client


@contextmanager
def supabase_session() -> Iterator[Client]:
    """
    Yield a Supabase client for the duration of a block.

    Reuses the shared client when the process lifecycle already created one;
    otherwise creates a temporary client that is dropped on exit.
    """
    if _supabase_client is not None:
        yield _supabase_client
        return

    client = _create_client()
    try:
        yield client
    finally:
        logger.debug("Released scoped Supabase client")
