"""
FeedbackCoordinator - Turns a reply to an active learning card into
feedback for the knowledge base.
"""

import logging
from typing import List, Optional
from dataclasses import dataclass
from enum import Enum

from src.adapters.qna import KnowledgeBaseClientInterface
from src.core.models import Answer, FeedbackRecord

logger = logging.getLogger(__name__)


class TrainingDecision(str, Enum):
    SELECTED = "selected"          # Reply picked one of the suggestions
    NO_MATCH = "no_match"          # Reply was the "none of the above" button
    UNRESOLVED = "unresolved"      # Anything else: treat as a new question


@dataclass
class TrainingOutcome:
    decision: TrainingDecision
    answer: Optional[Answer] = None


class FeedbackCoordinator:
    """
    Matches the reply against the text shown on each suggestion button
    (the first question, or the answer when it has none), byte for byte.

    No case folding or whitespace trimming is done.
    """

    def __init__(self, client: KnowledgeBaseClientInterface):
        self.client = client

    async def evaluate(
        self,
        candidates: List[Answer],
        reply: str,
        *,
        user_id: str,
        user_question: str,
        no_match_text: str,
    ) -> TrainingOutcome:
        selected = next((a for a in candidates if a.suggestion_text == reply), None)

        if selected is not None:
            record = FeedbackRecord(
                user_id=user_id,
                user_question=user_question,
                qna_id=str(selected.id),
            )
            await self.client.submit_feedback([record])
            logger.info(f"Feedback sent for answer {selected.id}")
            return TrainingOutcome(TrainingDecision.SELECTED, selected)

        if reply == no_match_text:
            return TrainingOutcome(TrainingDecision.NO_MATCH)

        return TrainingOutcome(TrainingDecision.UNRESOLVED)
