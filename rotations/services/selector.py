"""
Rotation selector: picks the next available slot from an ordered roster.
"""
import logging
from typing import NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)


class Selection(NamedTuple):
    slot: object
    position: int


def is_available(slot) -> bool:
    """A slot can receive leads when it is active and not paused."""
    return bool(slot.is_active) and not slot.is_paused


def select_next(roster: Sequence, start_position: int) -> Optional[Selection]:
    """
    Scan the roster circularly from `start_position` for the first available slot.

    Args:
        roster: Slots in stored queue order
        start_position: Index where the scan starts (the rotation pointer)

    Returns:
        Selection(slot, position) for the first available slot, or None when
        the roster is empty or every slot is paused/inactive.
    """
    size = len(roster)
    if size == 0:
        return None

    start = start_position % size if start_position else 0
    for offset in range(size):
        position = (start + offset) % size
        slot = roster[position]
        if is_available(slot):
            if offset:
                logger.debug(
                    f"Skipped {offset} unavailable slot(s) from position {start}, "
                    f"selected position {position}"
                )
            return Selection(slot, position)

    logger.debug(f"No available slot in roster of {size}")
    return None


def next_position(selected_position: int, roster_size: int) -> int:
    """Pointer value after a distribution to `selected_position`."""
    if roster_size <= 0:
        return 0
    return (selected_position + 1) % roster_size
