"""
Rotation lifecycle: creation, launch, roster edits and source lookup.
"""
import logging
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from django.conf import settings
from django.db import transaction

from rotations.models import LeadSource, Participant, ParticipantSlot, Rotation
from rotations.services.errors import LeadValidationError, RotationNotFound
from rotations.services.roster import list_ordered, lock_rotation, revalidate_pointer

logger = logging.getLogger(__name__)


def extract_domain(url: Optional[str]) -> str:
    """
    Hostname of a URL. Values that do not parse as an absolute URL are
    returned unchanged so a bare domain can be used as a source.
    """
    if not url:
        return ''
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return url
    return hostname or url


def _slot_fields(data: dict) -> dict:
    """Build ParticipantSlot field values from a roster entry."""
    participant = None
    participant_id = data.get('participant_id')
    if participant_id:
        try:
            participant = Participant.objects.get(id=participant_id, is_active=True)
        except Participant.DoesNotExist:
            raise LeadValidationError(
                f"Participant {participant_id} not found",
                invalid_fields=['participants'],
            )

    name = data.get('name') or (participant.name if participant else None)
    if not name:
        raise LeadValidationError('Participant name is required', missing_fields=['participants.name'])

    return {
        'participant': participant,
        'name': name,
        'discord_name': data.get('discord_name') or (participant.discord_name if participant else None),
        'discord_webhook': data.get('discord_webhook') or (participant.discord_webhook if participant else None),
        'lead_limit': data.get('lead_limit') or settings.DEFAULT_LEAD_LIMIT,
        'is_external': bool(data.get('is_external', participant is None)),
    }


def _replace_sources(rotation: Rotation, lead_sources: Iterable[str]) -> None:
    rotation.lead_sources.all().delete()
    LeadSource.objects.bulk_create([
        LeadSource(rotation=rotation, url=url.strip(), domain=extract_domain(url.strip()))
        for url in lead_sources
        if url and url.strip()
    ])


def create_rotation(
    name: str,
    description: Optional[str] = None,
    participants: Iterable[dict] = (),
    lead_sources: Iterable[str] = (),
    created_by=None,
) -> Rotation:
    """
    Create a rotation with its initial roster and lead sources.

    Args:
        name: Display name
        description: Optional description
        participants: Roster entries in queue order. Each entry has either a
            `participant_id` of a global Participant or its own `name`, plus
            optional `discord_name`, `discord_webhook`, `lead_limit`, `is_external`
        lead_sources: Landing page URLs (or bare domains) routed to this rotation
        created_by: Optional admin user

    Returns:
        The new, not yet launched, Rotation
    """
    if not name or not name.strip():
        raise LeadValidationError('Round robin name is required', missing_fields=['name'])

    with transaction.atomic():
        rotation = Rotation.objects.create(
            name=name.strip(),
            description=description or None,
            created_by=created_by,
        )
        for position, entry in enumerate(participants):
            ParticipantSlot.objects.create(rotation=rotation, queue_position=position, **_slot_fields(entry))
        _replace_sources(rotation, lead_sources)

    logger.info(f"Rotation {rotation.id} '{rotation.name}' created")
    return rotation


def launch_rotation(rotation_id: int) -> Rotation:
    """
    Start accepting leads. Launching is one-way.

    Raises:
        RotationNotFound: If the rotation does not exist
    """
    with transaction.atomic():
        rotation = lock_rotation(rotation_id)
        if not rotation.is_launched:
            rotation.is_launched = True
            rotation.save(update_fields=['is_launched', 'updated_at'])
            logger.info(f"Rotation {rotation.id} '{rotation.name}' launched")
    return rotation


def update_rotation(
    rotation_id: int,
    name: Optional[str] = None,
    description: Optional[str] = None,
    participants: Optional[Iterable[dict]] = None,
    lead_sources: Optional[Iterable[str]] = None,
) -> Rotation:
    """
    Edit a rotation. When `participants` is given it replaces the roster:

    - entries carrying the `id` of a current slot keep that slot (and its
      counters and pause state) at the new position
    - current slots not listed are deleted, or deactivated if they have leads
    - other entries become new slots

    The pointer is re-validated against the new roster size.

    Raises:
        RotationNotFound: If the rotation does not exist
        LeadValidationError: If a roster entry is invalid
    """
    with transaction.atomic():
        rotation = lock_rotation(rotation_id)

        if name is not None:
            if not name.strip():
                raise LeadValidationError('Round robin name is required', missing_fields=['name'])
            rotation.name = name.strip()
        if description is not None:
            rotation.description = description or None

        if participants is not None:
            _replace_roster(rotation, list(participants))
            revalidate_pointer(rotation, len(list_ordered(rotation.id)))

        if lead_sources is not None:
            _replace_sources(rotation, lead_sources)

        rotation.save()

    logger.info(f"Rotation {rotation.id} '{rotation.name}' updated")
    return rotation


def _replace_roster(rotation: Rotation, entries: List[dict]) -> None:
    current = {slot.id: slot for slot in list_ordered(rotation.id)}
    listed_ids = [entry.get('id') for entry in entries if entry.get('id') in current]
    if len(listed_ids) != len(set(listed_ids)):
        raise LeadValidationError(
            'participants must list each existing participant at most once',
            invalid_fields=['participants'],
        )
    kept_ids = set(listed_ids)

    for slot_id, slot in current.items():
        if slot_id in kept_ids:
            continue
        if slot.leads.exists():
            slot.is_active = False
            slot.save(update_fields=['is_active', 'updated_at'])
        else:
            slot.delete()

    # Park kept slots past the new range before numbering
    offset = len(entries) + len(current)
    for index, slot_id in enumerate(kept_ids):
        ParticipantSlot.objects.filter(id=slot_id).update(queue_position=offset + index)

    for position, entry in enumerate(entries):
        slot_id = entry.get('id')
        if slot_id in kept_ids:
            slot = current[slot_id]
            for field in ('name', 'discord_name', 'discord_webhook', 'lead_limit'):
                if entry.get(field):
                    setattr(slot, field, entry[field])
            slot.queue_position = position
            slot.save()
        else:
            ParticipantSlot.objects.create(rotation=rotation, queue_position=position, **_slot_fields(entry))


def find_by_source_url(source_url: Optional[str]) -> Optional[Rotation]:
    """
    Resolve the launched rotation a lead's source belongs to.

    An exact URL match wins over a match on the URL's domain.
    """
    if not source_url:
        return None

    sources = LeadSource.objects.filter(is_active=True, rotation__is_launched=True).select_related('rotation')

    match = sources.filter(url=source_url).order_by('id').first()
    if match is None:
        match = sources.filter(domain=extract_domain(source_url)).order_by('id').first()

    if match is None:
        logger.debug(f"No launched rotation for source {source_url}")
        return None
    return match.rotation


def get_rotation(rotation_id: int) -> Rotation:
    try:
        return Rotation.objects.get(id=rotation_id)
    except Rotation.DoesNotExist:
        raise RotationNotFound(rotation_id=rotation_id)
