"""
Distribution transaction: assigns one inbound lead to the next available
participant slot of a rotation.

Workflow (one database transaction, rotation row locked):
1. Load rotation; must exist and be launched
2. Load the ordered roster; must not be empty
3. Classify the lead against the junk rules
4. Select the next available slot from the stored pointer
5. Insert the lead (and its additional data)
6. Increment the slot's received count
7. Advance the pointer past the selected slot, increment the lead counter

Any failure in 1-7 rolls back everything. After commit, the assignment is
audited and the participant is notified unless the lead is junk; neither step
can fail the distribution.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F

from rotations.models import Lead, LeadAdditionalData, ParticipantSlot, Rotation
from rotations.services import audit, junk_filter
from rotations.services.errors import (
    DistributionError,
    EmptyRoster,
    LeadValidationError,
    NoAvailableParticipant,
    RotationNotFound,
    RotationNotLaunched,
    StorageError,
)
from rotations.services.normalization import normalize
from rotations.services.notifications import NotificationResult, notify
from rotations.services.roster import list_ordered, lock_rotation
from rotations.services.rotations import extract_domain, find_by_source_url
from rotations.services.selector import next_position, select_next
from rotations.services.validation import (
    BY_ROTATION_REQUIRED_FIELDS,
    BY_SOURCE_REQUIRED_FIELDS,
    INVALID_EMAIL,
    validate_lead,
)
from rotations.tasks import send_lead_notification

logger = logging.getLogger(__name__)


@dataclass
class DistributionResult:
    """Outcome of a committed distribution."""

    lead: Lead
    slot: ParticipantSlot
    rotation: Rotation
    position: int
    next_position: int
    junk: junk_filter.JunkClassification
    additional_data: List[dict] = field(default_factory=list)
    notification: Optional[NotificationResult] = None
    notification_queued: bool = False

    @property
    def notified(self) -> bool:
        return bool(self.notification and self.notification.success)

    def to_dict(self) -> dict:
        if self.notification_queued:
            notification = {'queued': True}
        elif self.notification is not None:
            notification = self.notification.to_dict()
        else:
            notification = {'success': False, 'reason': 'Skipped: lead classified as junk'}

        return {
            'success': True,
            'lead_id': self.lead.id,
            'status': self.lead.status,
            'assigned_to': self.slot.name,
            'participant_id': self.slot.id,
            'rotation': {
                'id': self.rotation.id,
                'name': self.rotation.name,
                'new_position': self.next_position,
            },
            'discord_notified': self.notified,
            'notification': notification,
            'message': 'Lead distributed successfully',
        }


def _assign(rotation_id: int, lead_data: dict, additional_data: List[dict]) -> DistributionResult:
    """Steps 1-7. Must run inside transaction.atomic()."""
    rotation = lock_rotation(rotation_id)
    if not rotation.is_launched:
        raise RotationNotLaunched(rotation_id=rotation.id)

    roster = list_ordered(rotation.id)
    if not roster:
        raise EmptyRoster(rotation_id=rotation.id)

    classification = junk_filter.classify(lead_data.get('email'), lead_data.get('phone'))

    selection = select_next(roster, rotation.current_position)
    if selection is None:
        raise NoAvailableParticipant(rotation_id=rotation.id)
    slot, position = selection

    source_url = lead_data.get('source_url')
    lead = Lead.objects.create(
        rotation=rotation,
        slot=slot,
        name=lead_data.get('name'),
        phone=lead_data.get('phone'),
        email=lead_data.get('email'),
        source_url=source_url,
        source_domain=extract_domain(source_url) or None,
        status=Lead.Status.JUNK if classification.is_junk else Lead.Status.SENT,
        status_reason=classification.reason if classification.is_junk else None,
    )

    if additional_data:
        LeadAdditionalData.objects.bulk_create([
            LeadAdditionalData(lead=lead, field_key=item['key'], field_value=item['value'])
            for item in additional_data
        ])

    ParticipantSlot.objects.filter(id=slot.id).update(leads_received=F('leads_received') + 1)
    slot.leads_received += 1

    new_position = next_position(position, len(roster))
    rotation.current_position = new_position
    rotation.total_leads += 1
    rotation.save(update_fields=['current_position', 'total_leads', 'updated_at'])

    return DistributionResult(
        lead=lead,
        slot=slot,
        rotation=rotation,
        position=position,
        next_position=new_position,
        junk=classification,
        additional_data=additional_data,
    )


def _dispatch_notification(result: DistributionResult, lead_data: dict) -> None:
    """Post-commit notification. Never raises."""
    lead, slot, rotation = result.lead, result.slot, result.rotation

    if result.junk.is_junk:
        audit.log_notification_skipped(
            lead.id, rotation.id, slot.id,
            f"Lead classified as junk: {result.junk.reason}",
        )
        return

    if settings.NOTIFICATIONS_ASYNC:
        try:
            send_lead_notification.delay(lead.id)
            result.notification_queued = True
            return
        except Exception as e:
            logger.error(f"Could not queue notification for lead {lead.id}, sending inline: {e}")
            audit.log_error(lead.id, rotation.id, slot.id, e, context={'context': 'notification_queue'})

    try:
        result.notification = notify(
            slot,
            lead_data,
            result.additional_data,
            lead_id=lead.id,
            rotation_id=rotation.id,
        )
    except Exception as e:
        logger.error(f"Unexpected notification error for lead {lead.id}: {e}", exc_info=True)
        audit.log_error(lead.id, rotation.id, slot.id, e, context={
            'context': 'discord_notification',
            'lead': {'name': lead.name, 'email': lead.email},
        })
        result.notification = NotificationResult(success=False, reason=str(e))


def distribute(rotation_id: int, lead_data: dict, additional_data: Optional[List[dict]] = None) -> DistributionResult:
    """
    Assign a lead to the rotation's next available participant.

    Not idempotent: each successful call consumes one step of the rotation.
    A call that raises has changed nothing and may be retried.

    Args:
        rotation_id: Target rotation
        lead_data: Normalized lead fields (name, email, phone, source_url)
        additional_data: Normalized [{'key', 'value'}] pairs stored with the lead

    Returns:
        DistributionResult with the committed lead and the notification outcome

    Raises:
        RotationNotFound, RotationNotLaunched, EmptyRoster,
        NoAvailableParticipant, StorageError
    """
    additional_data = additional_data or []

    try:
        with transaction.atomic():
            result = _assign(rotation_id, lead_data, additional_data)
    except DistributionError as e:
        logger.warning(f"Distribution to rotation {rotation_id} rejected: {e.code} ({e.message})")
        if not isinstance(e, RotationNotFound):
            audit.log_error(None, rotation_id, None, e, context={
                'context': 'distribution',
                'code': e.code,
                'lead': {'name': lead_data.get('name'), 'email': lead_data.get('email')},
            })
        raise
    except DatabaseError as e:
        logger.error(f"Distribution to rotation {rotation_id} rolled back: {e}", exc_info=True)
        if Rotation.objects.filter(id=rotation_id).exists():
            audit.log_error(None, rotation_id, None, e, context={'context': 'distribution_transaction'})
        raise StorageError(rotation_id=rotation_id) from e

    logger.info(
        f"Lead {result.lead.id} assigned to {result.slot.name} "
        f"(rotation {result.rotation.id}, position {result.position} -> {result.next_position})"
    )

    audit.log_lead_assigned(
        result.lead.id,
        result.rotation.id,
        result.slot.id,
        result.slot.name,
        junk=result.junk.is_junk,
    )
    _dispatch_notification(result, lead_data)
    return result


def _validation_error(rejection_code: str, fields: List[str], required_fields: List[str], payload) -> LeadValidationError:
    if rejection_code == INVALID_EMAIL:
        return LeadValidationError(
            'Please provide a valid email address',
            invalid_fields=fields,
        )
    return LeadValidationError(
        f"Missing required fields: {', '.join(fields)}",
        missing_fields=fields,
        required_fields=required_fields,
        received_data=sorted(payload.keys()) if isinstance(payload, dict) else [],
    )


def distribute_by_rotation(rotation_id: int, payload: dict, request_meta: Optional[dict] = None) -> DistributionResult:
    """
    Entry point for leads addressed to an explicit rotation.

    Requires name, email and phone. `source_url` falls back to the request's
    Referer header.
    """
    request_meta = request_meta or {}

    is_valid, rejection_code, fields = validate_lead(payload, BY_ROTATION_REQUIRED_FIELDS)
    if not is_valid:
        raise _validation_error(rejection_code, fields, BY_ROTATION_REQUIRED_FIELDS, payload)

    lead_data = normalize(payload)
    if not lead_data.get('source_url') and request_meta.get('referer'):
        lead_data['source_url'] = request_meta['referer']

    if Rotation.objects.filter(id=rotation_id).exists():
        audit.log_webhook_received(rotation_id, lead_data, request_meta)

    return distribute(rotation_id, lead_data)


def distribute_by_source(payload: dict, request_meta: Optional[dict] = None) -> DistributionResult:
    """
    Entry point for leads identified by their landing page.

    The rotation is resolved from `source_url` (exact URL first, then domain).
    Requires name, email, mobile_number and source_url; `additional_data`
    pairs are stored with the lead and included in the notification.
    """
    request_meta = request_meta or {}
    source_url = payload.get('source_url') if isinstance(payload, dict) else None
    source_url = source_url.strip() if isinstance(source_url, str) else source_url

    rotation = find_by_source_url(source_url)
    if rotation is not None:
        audit.log_webhook_received(rotation.id, payload, request_meta)

    is_valid, rejection_code, fields = validate_lead(payload, BY_SOURCE_REQUIRED_FIELDS)
    if not is_valid:
        error = _validation_error(rejection_code, fields, BY_SOURCE_REQUIRED_FIELDS, payload)
        if rotation is not None:
            audit.log_validation_failure(
                rotation.id,
                f"Incomplete lead data received: {error.message}",
                details={
                    'missing_fields': error.missing_fields,
                    'invalid_fields': error.invalid_fields,
                    'received_fields': sorted(payload.keys()),
                },
                request_meta={**request_meta, 'source_url': source_url},
            )
        raise error

    if rotation is None:
        raise RotationNotFound('No active round robin found for this source URL', source_url=source_url)

    lead_data = normalize(payload)
    return distribute(rotation.id, lead_data, lead_data.get('additional_data'))
