"""
Hint allowance: how many hints remain and which distractors a hint hides.
"""
import logging
import random
from typing import Optional, Sequence, Set

from .models import OptionSlot

logger = logging.getLogger(__name__)


class HintAllowance:
    """Tracks the session's hint budget and picks distractors to hide."""

    def __init__(self, hints: int = 1, removal_count: int = 2, rng: Optional[random.Random] = None):
        if hints < 0:
            raise ValueError(f"Hint count cannot be negative, got {hints}")
        if removal_count < 1:
            raise ValueError(f"Hint removal count must be at least 1, got {removal_count}")
        self._remaining = hints
        self._removal_count = removal_count
        self._rng = rng or random.Random()

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def available(self) -> bool:
        return self._remaining > 0

    def consume(self) -> bool:
        """Spend one hint. Returns False when none are left."""
        if self._remaining <= 0:
            return False
        self._remaining -= 1
        return True

    def pick_hint_targets(self, active_options: Sequence[OptionSlot], correct_value: str) -> Set[int]:
        """
        Choose which options a hint hides.

        Candidates are the visible options whose label differs from
        correct_value. When more candidates exist than the removal count,
        a uniform random subset of that size is returned; otherwise every
        candidate is returned, so the correct answer may end up alone.

        Args:
            active_options: Current option slots in display order
            correct_value: Label of the correct answer

        Returns:
            Set of indices into active_options
        """
        distractors = [
            index for index, slot in enumerate(active_options)
            if slot.visible and slot.label != correct_value
        ]

        if len(distractors) > self._removal_count:
            targets = set(self._rng.sample(distractors, self._removal_count))
        else:
            targets = set(distractors)

        logger.debug(f"Hint targets picked: {sorted(targets)} out of {len(distractors)} visible distractors")
        return targets
