"""
Database connection management.

Builds Supabase clients on demand. Each API process or batch run creates
its own client and hands it to a ShipmentStore.
"""

from supabase import create_client, Client
from typing import Optional
import structlog

from config.settings import Settings, get_settings
from exceptions import StoreConnectionError

logger = structlog.get_logger(__name__)


def create_supabase_client(
    settings: Optional[Settings] = None,
    use_service_key: bool = True
) -> Client:
    """
    Create a new Supabase client.

    Batch jobs read every row, so the service role key is preferred
    when it is configured.

    Args:
        settings: Settings to read credentials from (defaults to env)
        use_service_key: Prefer SUPABASE_SERVICE_KEY over the anon key

    Returns:
        Client: Supabase client

    Raises:
        StoreConnectionError: If credentials are missing or connection fails
    """
    settings = settings or get_settings()

    if not settings.supabase_configured:
        raise StoreConnectionError("Supabase credentials are not configured")

    key = settings.supabase_key or settings.supabase_service_key
    if use_service_key and settings.supabase_service_key:
        key = settings.supabase_service_key

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",  # Log partial URL only
            service_role=key == settings.supabase_service_key
        )

        client = create_client(settings.supabase_url, key)

        logger.info("supabase_client_created")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise StoreConnectionError(f"Failed to connect to Supabase: {e}") from e


def check_connection(client: Client) -> dict:
    """
    Check database connection health.

    Args:
        client: Supabase client to check

    Returns:
        dict: Connection status with details
    """
    try:
        shipments = client.table("shipments").select("id", count="exact").limit(1).execute()
        documents = client.table("classified_documents").select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "shipments_count": shipments.count,
            "documents_count": documents.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
