"""
Audit logger for lead distribution events.

Every step of a distribution (webhook received, lead assigned, notification
attempt/success/failure, errors) is appended to the LeadLog table and mirrored
to the operational logger. Recording never raises: audit logging is
observability, and a storage failure here must not break the caller.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone

from rotations.models import LeadLog

logger = logging.getLogger(__name__)

# Event types
WEBHOOK_RECEIVED = 'webhook_received'
LEAD_ASSIGNED = 'lead_assigned'
LEAD_MARKED_JUNK = 'lead_marked_junk'
NOTIFICATION_ATTEMPT = 'discord_attempt'
NOTIFICATION_SUCCESS = 'discord_success'
NOTIFICATION_FAILURE = 'discord_failure'
NOTIFICATION_SKIPPED = 'notification_skipped'
VALIDATION_FAILED = 'validation_failed'
ERROR = 'error'

_LOG_LEVELS = {
    LeadLog.EventStatus.SUCCESS: logging.INFO,
    LeadLog.EventStatus.INFO: logging.INFO,
    LeadLog.EventStatus.WARNING: logging.WARNING,
    LeadLog.EventStatus.FAILURE: logging.ERROR,
}


def record(
    event_type: str,
    message: str,
    status: str = LeadLog.EventStatus.INFO,
    rotation_id: Optional[int] = None,
    lead_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    details: Optional[dict] = None,
    error_details: Optional[str] = None,
    source_url: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    response_time_ms: Optional[int] = None,
) -> Optional[int]:
    """
    Append one audit event.

    Returns:
        The id of the new LeadLog row, or None if it could not be stored.
    """
    logger.log(
        _LOG_LEVELS.get(status, logging.INFO),
        f"[{event_type}] {message}"
        + (f" details={details}" if details else "")
        + (f" error={error_details}" if error_details else "")
    )

    try:
        # Savepoint keeps a failed insert from poisoning an enclosing transaction
        with transaction.atomic():
            entry = LeadLog.objects.create(
                event_type=event_type,
                status=status,
                message=message,
                rotation_id=rotation_id,
                lead_id=lead_id,
                slot_id=slot_id,
                details=details,
                error_details=error_details,
                source_url=source_url,
                ip_address=ip_address or None,
                user_agent=(user_agent or '')[:500] or None,
                response_time_ms=response_time_ms,
            )
        return entry.id
    except Exception as e:
        logger.error(f"Failed to record audit event {event_type}: {e}", exc_info=True)
        return None


def log_webhook_received(rotation_id: int, lead_data: dict, request_meta: Optional[dict] = None) -> Optional[int]:
    request_meta = request_meta or {}
    additional = lead_data.get('additional_data')
    return record(
        WEBHOOK_RECEIVED,
        f"Webhook received for lead: {lead_data.get('name')}",
        rotation_id=rotation_id,
        details={
            'lead_name': lead_data.get('name'),
            'lead_email': lead_data.get('email'),
            'lead_phone': lead_data.get('mobile_number') or lead_data.get('phone'),
            'additional_data_count': len(additional) if isinstance(additional, list) else 0,
        },
        source_url=lead_data.get('source_url'),
        ip_address=request_meta.get('ip_address'),
        user_agent=request_meta.get('user_agent'),
    )


def log_lead_assigned(lead_id: int, rotation_id: int, slot_id: int, participant_name: str, junk: bool = False) -> Optional[int]:
    return record(
        LEAD_ASSIGNED,
        f"Lead assigned to {participant_name}",
        status=LeadLog.EventStatus.SUCCESS,
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={
            'participant_name': participant_name,
            'junk': junk,
            'assigned_at': timezone.now().isoformat(),
        },
    )


def log_notification_attempt(lead_id, rotation_id, slot_id, participant_name: str, webhook_url: Optional[str]) -> Optional[int]:
    return record(
        NOTIFICATION_ATTEMPT,
        f"Attempting to send Discord notification to {participant_name}",
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={
            'participant_name': participant_name,
            'webhook_url': 'configured' if webhook_url else 'not_configured',
            'attempted_at': timezone.now().isoformat(),
        },
    )


def log_notification_success(lead_id, rotation_id, slot_id, participant_name: str, response_time_ms: int) -> Optional[int]:
    return record(
        NOTIFICATION_SUCCESS,
        f"Discord notification sent successfully to {participant_name}",
        status=LeadLog.EventStatus.SUCCESS,
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={
            'participant_name': participant_name,
            'sent_at': timezone.now().isoformat(),
        },
        response_time_ms=response_time_ms,
    )


def log_notification_failure(
    lead_id,
    rotation_id,
    slot_id,
    participant_name: str,
    reason: str,
    error_type: str = 'Unknown',
    response_time_ms: Optional[int] = None,
) -> Optional[int]:
    return record(
        NOTIFICATION_FAILURE,
        f"Discord notification failed for {participant_name}",
        status=LeadLog.EventStatus.FAILURE,
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={
            'participant_name': participant_name,
            'failed_at': timezone.now().isoformat(),
            'error_type': error_type,
        },
        error_details=reason,
        response_time_ms=response_time_ms,
    )


def log_notification_skipped(lead_id, rotation_id, slot_id, reason: str) -> Optional[int]:
    return record(
        NOTIFICATION_SKIPPED,
        f"Notification skipped: {reason}",
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={'reason': reason},
    )


def log_validation_failure(rotation_id: Optional[int], message: str, details: dict, request_meta: Optional[dict] = None) -> Optional[int]:
    request_meta = request_meta or {}
    return record(
        VALIDATION_FAILED,
        message,
        status=LeadLog.EventStatus.FAILURE,
        rotation_id=rotation_id,
        details=details,
        source_url=request_meta.get('source_url'),
        ip_address=request_meta.get('ip_address'),
        user_agent=request_meta.get('user_agent'),
    )


def log_error(lead_id, rotation_id, slot_id, error: BaseException, context: Optional[dict] = None) -> Optional[int]:
    return record(
        ERROR,
        f"Error occurred: {error}",
        status=LeadLog.EventStatus.FAILURE,
        rotation_id=rotation_id,
        lead_id=lead_id,
        slot_id=slot_id,
        details={
            'error_type': type(error).__name__,
            'context': context or {},
        },
        error_details=str(error),
    )


def _serialize(entry: LeadLog) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'lead_id': entry.lead_id,
        'lead_name': entry.lead.name if entry.lead_id and entry.lead else None,
        'rotation_id': entry.rotation_id,
        'rotation_name': entry.rotation.name if entry.rotation_id and entry.rotation else None,
        'participant_id': entry.slot_id,
        'participant_name': entry.slot.name if entry.slot_id and entry.slot else None,
        'event_type': entry.event_type,
        'status': entry.status,
        'message': entry.message,
        'details': entry.details,
        'error_details': entry.error_details,
        'source_url': entry.source_url,
        'ip_address': entry.ip_address,
        'user_agent': entry.user_agent,
        'response_time_ms': entry.response_time_ms,
        'created_at': entry.created_at.isoformat() if entry.created_at else None,
    }


def _base_queryset():
    return LeadLog.objects.select_related('lead', 'rotation', 'slot').order_by('-created_at', '-id')


def get_lead_logs(lead_id: int, limit: int = 50) -> List[Dict[str, Any]]:
    """Events for one lead, most recent first."""
    try:
        return [_serialize(entry) for entry in _base_queryset().filter(lead_id=lead_id)[:limit]]
    except Exception as e:
        logger.error(f"Failed to get lead logs for lead {lead_id}: {e}", exc_info=True)
        return []


def get_rotation_logs(rotation_id: int, limit: Optional[int] = None, since=None) -> List[Dict[str, Any]]:
    """
    Events for one rotation, most recent first.

    Args:
        rotation_id: Rotation to filter on
        limit: Maximum number of events (defaults to AUDIT_LOG_LIMIT)
        since: Optional datetime lower bound on created_at
    """
    limit = limit or settings.AUDIT_LOG_LIMIT
    try:
        queryset = _base_queryset().filter(rotation_id=rotation_id)
        if since is not None:
            queryset = queryset.filter(created_at__gte=since)
        return [_serialize(entry) for entry in queryset[:limit]]
    except Exception as e:
        logger.error(f"Failed to get logs for rotation {rotation_id}: {e}", exc_info=True)
        return []


def get_error_logs(limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Failure events across all rotations, most recent first."""
    limit = limit or settings.ERROR_LOG_LIMIT
    try:
        queryset = _base_queryset().filter(status=LeadLog.EventStatus.FAILURE)
        return [_serialize(entry) for entry in queryset[:limit]]
    except Exception as e:
        logger.error(f"Failed to get error logs: {e}", exc_info=True)
        return []


def get_notification_stats(rotation_id: Optional[int] = None, days: int = 7) -> Dict[str, Any]:
    """
    Success/failure counts and average latency of notifications over the
    trailing `days` days, optionally for one rotation.
    """
    try:
        queryset = LeadLog.objects.filter(
            event_type__in=[NOTIFICATION_SUCCESS, NOTIFICATION_FAILURE],
            created_at__gte=timezone.now() - timedelta(days=days),
        )
        if rotation_id:
            queryset = queryset.filter(rotation_id=rotation_id)

        stats = queryset.aggregate(
            successful=Count('id', filter=Q(event_type=NOTIFICATION_SUCCESS)),
            failed=Count('id', filter=Q(event_type=NOTIFICATION_FAILURE)),
            avg_response_time=Avg('response_time_ms', filter=Q(event_type=NOTIFICATION_SUCCESS)),
        )
    except Exception as e:
        logger.error(f"Failed to get notification stats: {e}", exc_info=True)
        return {'successful': 0, 'failed': 0, 'total': 0, 'success_rate': 0, 'avg_response_time': None}

    successful = stats['successful'] or 0
    failed = stats['failed'] or 0
    total = successful + failed
    avg_response_time = stats['avg_response_time']
    return {
        'successful': successful,
        'failed': failed,
        'total': total,
        'success_rate': round(successful / total * 100, 2) if total else 0,
        'avg_response_time': round(avg_response_time) if avg_response_time is not None else None,
    }
