import logging

from celery import shared_task

from apps.users.provider import ProviderClient
from apps.users.sync import sync_identities

logger = logging.getLogger(__name__)


@shared_task(autoretry_for=(Exception,), retry_backoff=True, max_retries=3)
def sync_identities_task():
    """
    Periodic pull of every provider user into the local identity store.
    Scheduled by celery beat when IDENTITY_PROVIDER_SYNC_ENABLED is set.
    """
    with ProviderClient() as client:
        summary = sync_identities(client)
    logger.info(f"Scheduled identity sync: {summary}")
    return summary
