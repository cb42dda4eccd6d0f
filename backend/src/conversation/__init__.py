"""
Conversation module: the knowledge base dialog and the message router.

- QnADialog: 4-step waterfall (query, train, follow-up, display)
- Active learning: close low-confidence answers become a "Did you mean" card
- Follow-up prompts: answers can chain to the next question
- DentalAssistantBot: scheduler intents vs. knowledge base questions
"""

from src.conversation.context import (
    TurnContext,
    DialogState,
    DialogStep,
    DialogStateStore,
    MemoryDialogStateStore,
    RedisDialogStateStore,
)
from src.conversation.active_learning import ActiveLearningSelector, top_answer
from src.conversation.follow_up import FollowUpPromptManager
from src.conversation.training import FeedbackCoordinator, TrainingDecision, TrainingOutcome
from src.conversation.presenter import ResponsePresenter
from src.conversation.dialogue import QnADialog, TurnOutcome, TurnStatus
from src.conversation.bot import DentalAssistantBot

__all__ = [
    "TurnContext",
    "DialogState",
    "DialogStep",
    "DialogStateStore",
    "MemoryDialogStateStore",
    "RedisDialogStateStore",
    "ActiveLearningSelector",
    "top_answer",
    "FollowUpPromptManager",
    "FeedbackCoordinator",
    "TrainingDecision",
    "TrainingOutcome",
    "ResponsePresenter",
    "QnADialog",
    "TurnOutcome",
    "TurnStatus",
    "DentalAssistantBot",
]
