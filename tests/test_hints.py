"""
Unit tests for hint budgeting and distractor selection.
"""
import unittest
import random
from collections import Counter

from quizcycle.hints import HintAllowance
from quizcycle.models import OptionSlot


class TestHintAllowance(unittest.TestCase):
    """Test cases for hint budgeting and target selection."""

    def slots(self, labels, hidden=()):
        return [OptionSlot(label, label not in hidden) for label in labels]

    def test_consume_until_empty(self):
        """Test consume until empty."""
        hints = HintAllowance(hints=2)
        self.assertTrue(hints.consume())
        self.assertTrue(hints.consume())
        self.assertFalse(hints.consume())
        self.assertEqual(hints.remaining, 0)
        self.assertFalse(hints.available)

    def test_invalid_construction(self):
        """Test invalid construction."""
        with self.assertRaises(ValueError):
            HintAllowance(hints=-1)
        with self.assertRaises(ValueError):
            HintAllowance(removal_count=0)

    def test_never_targets_correct_option(self):
        """Test never targets correct option."""
        for seed in range(50):
            hints = HintAllowance(rng=random.Random(seed))
            targets = hints.pick_hint_targets(self.slots(["A", "B", "C", "D", "E"]), "C")
            self.assertEqual(len(targets), 2)
            self.assertNotIn(2, targets)

    def test_skips_hidden_options(self):
        """Test skips hidden options."""
        hints = HintAllowance(rng=random.Random(0))
        targets = hints.pick_hint_targets(self.slots(["A", "B", "C", "D"], hidden=("B",)), "A")
        self.assertEqual(targets, {2, 3})

    def test_few_distractors_returns_all(self):
        """Test few distractors returns all."""
        hints = HintAllowance(rng=random.Random(0))
        self.assertEqual(hints.pick_hint_targets(self.slots(["A", "B"]), "A"), {1})
        self.assertEqual(hints.pick_hint_targets(self.slots(["A"]), "A"), set())

    def test_targets_roughly_uniform(self):
        """Test targets roughly uniform."""
        hints = HintAllowance(rng=random.Random(1234))
        counts = Counter()
        for _ in range(3000):
            counts[frozenset(hints.pick_hint_targets(self.slots(["A", "B", "C", "D"]), "A"))] += 1

        self.assertEqual(len(counts), 3)
        for count in counts.values():
            self.assertGreater(count, 800)


if __name__ == '__main__':
    unittest.main()
