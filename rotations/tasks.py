"""
Celery tasks for deferred lead notification.
"""
import logging
from celery import shared_task

from rotations.models import Lead
from rotations.services.notifications import notify

logger = logging.getLogger(__name__)


@shared_task
def send_lead_notification(lead_id: int) -> dict:
    """
    Notify the participant a committed lead was assigned to.

    Used instead of the inline notification when NOTIFICATIONS_ASYNC is set,
    so a slow chat endpoint never holds the webhook request. Junk leads are
    not notified.

    Args:
        lead_id: ID of the Lead to announce

    Returns:
        The notification result as a dict
    """
    try:
        lead = (
            Lead.objects
            .select_related('slot')
            .prefetch_related('additional_data')
            .get(id=lead_id)
        )
    except Lead.DoesNotExist:
        logger.error(f"Lead {lead_id} not found in database")
        raise

    if lead.status == Lead.Status.JUNK:
        logger.info(f"Lead {lead_id} is junk, notification skipped")
        return {'success': False, 'reason': 'Lead is junk'}

    lead_data = {
        'name': lead.name,
        'email': lead.email,
        'phone': lead.phone,
        'source_url': lead.source_url,
    }
    result = notify(
        lead.slot,
        lead_data,
        list(lead.additional_data.all()),
        lead_id=lead.id,
        rotation_id=lead.rotation_id,
    )
    logger.info(f"Lead {lead_id} notification {'sent' if result.success else 'failed'}: {result.reason or 'ok'}")
    return result.to_dict()
