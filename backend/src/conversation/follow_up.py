"""
FollowUpPromptManager - Keeps the follow-up prompts of the last answer so
the next user message can be resolved to the prompt's target answer.
"""

import logging
from typing import Optional

from src.conversation.context import DialogState
from src.core.models import Answer

logger = logging.getLogger(__name__)


class FollowUpPromptManager:
    """
    Reads and writes the follow-up part of a DialogState.

    Matching is exact: "Yes" resolves, "yes" does not.
    """

    def previous_answer_id(self, state: DialogState) -> int:
        return state.previous_qna_id

    def has_pending(self, state: DialogState) -> bool:
        return state.previous_qna_id > 0

    def persist(self, state: DialogState, answer: Answer):
        """Store the answer's prompts (display text -> answer id) and anchor id."""
        state.prompt_map = {prompt.display_text: prompt.qna_id for prompt in answer.prompts}
        state.previous_qna_id = answer.id

    def resolve(self, state: DialogState, text: str) -> Optional[int]:
        """Target answer id for the user's text, or None for a fresh query."""
        if state.previous_qna_id <= 0:
            return None

        if not state.prompt_map:
            # Anchor without prompts: fall back to a fresh query
            logger.debug(
                f"Follow-up anchor {state.previous_qna_id} has no prompts, "
                f"treating '{text}' as a new question"
            )
            return None

        return state.prompt_map.get(text)

    def clear(self, state: DialogState):
        state.prompt_map = {}
        state.previous_qna_id = 0
