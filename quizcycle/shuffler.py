"""
Randomized ordering of questions and answer options.
"""
import random
from typing import List, Optional, Sequence, TypeVar

from .models import Question

T = TypeVar("T")


class RoundShuffler:
    """Produces uniform random permutations for rounds and option lists."""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize the shuffler.

        Args:
            rng: Random source; a private one is created if omitted
        """
        self._rng = rng or random.Random()

    def permute(self, items: Sequence[T]) -> List[T]:
        """
        Return a new list holding a uniform random permutation of items.

        random.shuffle is an in-place Fisher-Yates pass, so every ordering
        is equally likely. The input is never modified.
        """
        shuffled = list(items)
        if len(shuffled) > 1:
            self._rng.shuffle(shuffled)
        return shuffled

    def shuffle_questions(self, questions: Sequence[Question]) -> List[Question]:
        """
        Shuffle questions randomly.

        Args:
            questions: Questions of one difficulty tier

        Returns:
            New list with questions in random order
        """
        return self.permute(questions)

    def shuffle_options(self, question: Question) -> List[str]:
        """
        Shuffle a question's answer options.

        Args:
            question: Question whose options should be reordered

        Returns:
            New list with option labels in random order
        """
        return self.permute(question.options)
