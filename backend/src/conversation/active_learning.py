"""
ActiveLearningSelector - Decides when close, low-confidence answers
should be offered back to the user instead of answering outright.
"""

import logging
from typing import List, Optional

from src.adapters.qna import KnowledgeBaseClientInterface
from src.core.models import Answer, QueryResult

logger = logging.getLogger(__name__)

DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.3


def top_answer(answers: List[Answer]) -> Optional[Answer]:
    """Highest scoring answer; on ties the first one seen wins."""
    best: Optional[Answer] = None
    for answer in answers:
        if best is None or answer.score > best.score:
            best = answer
    return best


class ActiveLearningSelector:
    """
    Disambiguation is required only when:
    1. the top score is at or below the low-confidence threshold,
    2. the knowledge base has active learning enabled,
    3. at least two answers survive low score variation filtering.
    """

    def __init__(
        self,
        client: KnowledgeBaseClientInterface,
        threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
    ):
        self.client = client
        self.threshold = threshold

    def is_low_confidence(self, answers: List[Answer]) -> bool:
        best = top_answer(answers)
        return best is not None and best.score <= self.threshold

    def select(self, result: QueryResult) -> List[Answer]:
        """
        Return the answers to offer for disambiguation.

        An empty list means answer directly.
        """
        if not self.is_low_confidence(result.answers):
            return []

        candidates = self.client.low_score_variation(result.answers)
        if result.active_learning_enabled and len(candidates) > 1:
            logger.info(
                f"Active learning: {len(candidates)} candidates "
                f"(top score {candidates[0].score:.2f})"
            )
            return candidates

        return []
