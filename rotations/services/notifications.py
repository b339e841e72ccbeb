"""
Notification dispatcher: tells the assigned participant about a new lead
through their Discord webhook.

Delivery is best effort. `notify` never raises; the lead has already been
committed when it runs, and a failed notification is only reported and audited.
"""
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx
from django.conf import settings

from rotations.services import audit

logger = logging.getLogger(__name__)

NO_WEBHOOK_REASON = 'No webhook configured'


@dataclass
class NotificationResult:
    success: bool
    reason: Optional[str] = None
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None

    def to_dict(self) -> dict:
        data = {'success': self.success}
        if self.reason is not None:
            data['reason'] = self.reason
        if self.response_time_ms is not None:
            data['response_time_ms'] = self.response_time_ms
        return data


def _iter_fields(additional_data: Optional[Iterable]):
    """Yield (key, value) for each additional field that has both."""
    for item in additional_data or []:
        if isinstance(item, dict):
            key, value = item.get('key'), item.get('value')
        else:
            key = getattr(item, 'field_key', None)
            value = getattr(item, 'field_value', None)
        if key and value:
            yield key, value


def build_message(participant_name: str, lead_data: dict, additional_data: Optional[Iterable] = None) -> str:
    """
    Format the plain-text lead announcement.

    The phone number is rendered as a WhatsApp click-to-chat link.
    """
    phone = lead_data.get('mobile_number') or lead_data.get('phone') or ''
    lines = [
        'New Lead Please take note!',
        '===========================',
        f"Hello {participant_name}, you have a new lead:",
        f"- Name: {lead_data.get('name')}",
        f"- Email: {lead_data.get('email')}",
        f"- Mobile Number: https://wa.me/+{settings.WHATSAPP_COUNTRY_CODE}{phone}",
    ]
    for key, value in _iter_fields(additional_data):
        lines.append(f"- {key}: {value}")
    return '\n'.join(lines)


def build_payload(slot, lead_data: dict, additional_data: Optional[Iterable] = None) -> dict:
    return {
        'content': build_message(slot.name, lead_data, additional_data),
        'username': slot.discord_name or slot.name,
    }


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def notify(
    slot,
    lead_data: dict,
    additional_data: Optional[Iterable] = None,
    lead_id: Optional[int] = None,
    rotation_id: Optional[int] = None,
) -> NotificationResult:
    """
    Send the lead to the slot's Discord webhook.

    Args:
        slot: ParticipantSlot the lead was assigned to
        lead_data: Lead contact fields (name, email, phone or mobile_number)
        additional_data: Extra key/value fields appended to the message
        lead_id: Lead the audit events refer to
        rotation_id: Rotation the audit events refer to

    Returns:
        NotificationResult; success only for a 2xx response
    """
    slot_id = getattr(slot, 'id', None)
    webhook_url = slot.discord_webhook

    audit.log_notification_attempt(lead_id, rotation_id, slot_id, slot.name, webhook_url)

    if not webhook_url:
        audit.log_notification_failure(
            lead_id, rotation_id, slot_id, slot.name,
            reason='No Discord webhook configured',
            error_type='ConfigurationError',
        )
        return NotificationResult(success=False, reason=NO_WEBHOOK_REASON)

    payload = build_payload(slot, lead_data, additional_data)
    logger.info(f"Sending lead {lead_id} notification to {slot.name}")
    logger.debug(f"Payload: {payload}")

    started = time.monotonic()
    try:
        response = httpx.post(
            webhook_url,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=settings.NOTIFICATION_TIMEOUT,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        response_time_ms = _elapsed_ms(started)
        logger.error(f"Error sending notification for lead {lead_id}: {e}")
        audit.log_notification_failure(
            lead_id, rotation_id, slot_id, slot.name,
            reason=str(e) or type(e).__name__,
            error_type=type(e).__name__,
            response_time_ms=response_time_ms,
        )
        return NotificationResult(
            success=False,
            reason=str(e) or type(e).__name__,
            response_time_ms=response_time_ms,
        )

    response_time_ms = _elapsed_ms(started)
    logger.info(f"Discord webhook response: {response.status_code} in {response_time_ms}ms")

    if 200 <= response.status_code < 300:
        audit.log_notification_success(lead_id, rotation_id, slot_id, slot.name, response_time_ms)
        return NotificationResult(
            success=True,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
        )

    reason = f"HTTP {response.status_code}: {response.text}"
    audit.log_notification_failure(
        lead_id, rotation_id, slot_id, slot.name,
        reason=reason,
        error_type='HTTPStatusError',
        response_time_ms=response_time_ms,
    )
    return NotificationResult(
        success=False,
        reason=reason,
        status_code=response.status_code,
        response_time_ms=response_time_ms,
    )
