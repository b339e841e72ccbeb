"""
Participant roster: ordering, pausing and removal of rotation slots.

Active slots of a rotation always hold the dense positions 0..N-1. Every
write here is a short atomic unit that locks the rotation row, the same lock
the distribution transaction takes, so a reorder or pause never interleaves
with a pointer advance.
"""
import logging
from typing import List, Sequence

from django.db import transaction
from django.utils import timezone

from rotations.models import ParticipantSlot, Rotation
from rotations.services.errors import LeadValidationError, RotationNotFound

logger = logging.getLogger(__name__)


def list_ordered(rotation_id: int) -> List[ParticipantSlot]:
    """Active slots in queue order. Paused slots are included."""
    return list(
        ParticipantSlot.objects
        .filter(rotation_id=rotation_id, is_active=True)
        .order_by('queue_position', 'id')
    )


def lock_rotation(rotation_id: int) -> Rotation:
    """
    Load a rotation with a row lock. Must be called inside transaction.atomic().

    Raises:
        RotationNotFound: If the rotation does not exist
    """
    try:
        return Rotation.objects.select_for_update().get(id=rotation_id)
    except Rotation.DoesNotExist:
        raise RotationNotFound(rotation_id=rotation_id)


def revalidate_pointer(rotation: Rotation, roster_size: int) -> bool:
    """
    Reset the pointer to 0 if it no longer indexes the roster.

    Returns:
        True if the pointer was changed (caller saves the rotation)
    """
    if rotation.current_position < roster_size or rotation.current_position == 0:
        return False
    logger.info(
        f"Rotation {rotation.id}: pointer {rotation.current_position} out of range "
        f"for roster of {roster_size}, reset to 0"
    )
    rotation.current_position = 0
    return True


def _assign_positions(slots: Sequence[ParticipantSlot]) -> None:
    """
    Write positions 0..N-1 in the given order.

    Positions are first moved past the highest current one so the unique
    (rotation, position) index holds after every single UPDATE.
    """
    if not slots:
        return
    offset = max(len(slots), max(slot.queue_position for slot in slots) + 1)
    for index, slot in enumerate(slots):
        ParticipantSlot.objects.filter(id=slot.id).update(queue_position=index + offset)
    for index, slot in enumerate(slots):
        ParticipantSlot.objects.filter(id=slot.id).update(queue_position=index)
        slot.queue_position = index


def reorder(rotation_id: int, slot_ids: Sequence[int]) -> List[ParticipantSlot]:
    """
    Reassign queue positions from a full permutation of the active slot ids.

    Allowed on launched rotations; the new order applies to the next
    distribution. The pointer is left as is.

    Raises:
        RotationNotFound: If the rotation does not exist
        LeadValidationError: If slot_ids is not a permutation of the active slots
    """
    try:
        requested = [int(slot_id) for slot_id in slot_ids]
    except (TypeError, ValueError):
        raise LeadValidationError('participant_ids must be a list of ids', invalid_fields=['participant_ids'])

    with transaction.atomic():
        rotation = lock_rotation(rotation_id)
        slots = {slot.id: slot for slot in list_ordered(rotation.id)}

        if len(requested) != len(set(requested)) or set(requested) != set(slots):
            raise LeadValidationError(
                'participant_ids must list every active participant exactly once',
                invalid_fields=['participant_ids'],
            )

        ordered = [slots[slot_id] for slot_id in requested]
        _assign_positions(ordered)

    logger.info(f"Rotation {rotation_id}: participants reordered to {requested}")
    return ordered


def set_paused(rotation_id: int, slot_id: int, is_paused: bool, reason: str = '') -> ParticipantSlot:
    """
    Pause or unpause a slot. Paused slots stay in the roster but are skipped
    at selection time.

    Raises:
        RotationNotFound: If the rotation does not exist
        ParticipantSlot.DoesNotExist: If the slot is not an active member of the rotation
    """
    with transaction.atomic():
        lock_rotation(rotation_id)
        slot = ParticipantSlot.objects.select_for_update().get(
            id=slot_id, rotation_id=rotation_id, is_active=True
        )
        slot.is_paused = is_paused
        slot.pause_reason = (reason or None) if is_paused else None
        slot.paused_at = timezone.now() if is_paused else None
        slot.save(update_fields=['is_paused', 'pause_reason', 'paused_at', 'updated_at'])

    logger.info(
        f"Rotation {rotation_id}: participant {slot.name} "
        f"{'paused' if is_paused else 'unpaused'}" + (f" ({reason})" if is_paused and reason else "")
    )
    return slot


def remove_slot(rotation_id: int, slot_id: int) -> bool:
    """
    Remove a slot from the roster.

    A slot that has received leads is deactivated instead of deleted. The
    remaining active slots are re-packed and the pointer keeps pointing at the
    same next participant where possible.

    Returns:
        True if the slot row was deleted, False if it was deactivated

    Raises:
        RotationNotFound: If the rotation does not exist
        ParticipantSlot.DoesNotExist: If the slot is not an active member of the rotation
    """
    with transaction.atomic():
        rotation = lock_rotation(rotation_id)
        slot = ParticipantSlot.objects.get(id=slot_id, rotation_id=rotation.id, is_active=True)
        removed_position = slot.queue_position

        deleted = not slot.leads.exists()
        if deleted:
            slot.delete()
        else:
            slot.is_active = False
            slot.save(update_fields=['is_active', 'updated_at'])

        remaining = list_ordered(rotation.id)
        _assign_positions(remaining)

        if removed_position < rotation.current_position:
            rotation.current_position -= 1
        revalidate_pointer(rotation, len(remaining))
        rotation.save(update_fields=['current_position', 'updated_at'])

    logger.info(
        f"Rotation {rotation_id}: participant slot {slot_id} "
        f"{'deleted' if deleted else 'deactivated (has leads)'}"
    )
    return deleted
