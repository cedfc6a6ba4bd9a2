"""
Circle Onboarding - Supabase Client.

Low-level database access for the durable channel and the equipment catalog.
"""

from supabase import Client, create_client

from .config import settings

# Singleton client instance
_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase service client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _client
