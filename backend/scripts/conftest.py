"""Pytest configuration and fixtures."""
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add backend to path so `src` imports resolve
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.adapters.luis import EntityInstance, IntentRecognizerInterface, RecognizerResult
from src.adapters.qna import KnowledgeBaseClientInterface
from src.adapters.scheduler import SchedulerInterface
from src.conversation.bot import DentalAssistantBot
from src.conversation.context import MemoryDialogStateStore, TurnContext
from src.conversation.dialogue import QnADialog
from src.core.models import Answer, FeedbackRecord, QueryOptions, QueryResult


def make_answer(
    id: int,
    score: float,
    question: Optional[str] = None,
    text: Optional[str] = None,
    prompts: Optional[Dict[str, int]] = None,
) -> Answer:
    return Answer.model_validate({
        "id": id,
        "answer": text or f"Answer {id}",
        "score": score,
        "questions": [question or f"Question {id}?"],
        "context": {
            "prompts": [
                {"displayOrder": i, "displayText": display, "qnaId": target}
                for i, (display, target) in enumerate((prompts or {}).items())
            ]
        },
    })


class MockKnowledgeBase(KnowledgeBaseClientInterface):
    """
    Scripted knowledge base.

    `responses` maps a question (or "qna:<id>" for targeted queries) to a
    QueryResult; anything unknown returns no answers.
    """

    def __init__(self, responses: Optional[Dict[str, QueryResult]] = None):
        self.responses = responses or {}
        self.queries: List[tuple] = []
        self.feedback: List[FeedbackRecord] = []
        self.fail_next_query: Optional[Exception] = None

    async def query(self, question: str, options: QueryOptions) -> QueryResult:
        self.queries.append((question, options.model_copy(deep=True)))
        if self.fail_next_query is not None:
            error, self.fail_next_query = self.fail_next_query, None
            raise error
        if options.qna_id and f"qna:{options.qna_id}" in self.responses:
            return self.responses[f"qna:{options.qna_id}"].model_copy(deep=True)
        result = self.responses.get(question)
        return result.model_copy(deep=True) if result else QueryResult()

    async def submit_feedback(self, records: List[FeedbackRecord]) -> bool:
        self.feedback.extend(records)
        return True


class MockRecognizer(IntentRecognizerInterface):
    def __init__(self, results: Optional[Dict[str, RecognizerResult]] = None):
        self.results = results or {}
        self.calls: List[str] = []

    async def recognize(self, text: str) -> RecognizerResult:
        self.calls.append(text)
        return self.results.get(text) or RecognizerResult(
            text=text, top_intent="None", intents={"None": 0.9}, instances={}
        )


class MockScheduler(SchedulerInterface):
    def __init__(self):
        self.booked: List[str] = []

    async def get_availability(self) -> str:
        return "Current time slots available: \n8am\n4pm"

    async def schedule_appointment(self, time: str) -> str:
        self.booked.append(time)
        return f"An appointment is set for {time}."


@pytest.fixture
def store():
    return MemoryDialogStateStore()


@pytest.fixture
def kb():
    return MockKnowledgeBase()


@pytest.fixture
def dialog(kb, store):
    return QnADialog(kb, store)


@pytest.fixture
def recognizer():
    return MockRecognizer()


@pytest.fixture
def scheduler():
    return MockScheduler()


@pytest.fixture
def bot(dialog, recognizer, scheduler):
    return DentalAssistantBot(dialog, recognizer, scheduler)


@pytest.fixture
def turn():
    """Factory for message turns in one conversation."""
    def _turn(text: str, conversation_id: str = "conv-1", user_id: str = "user-1") -> TurnContext:
        return TurnContext(conversation_id=conversation_id, text=text, user_id=user_id)
    return _turn


@pytest.fixture
def entity():
    def _entity(text: str, type: str = "builtin.datetimeV2.time") -> EntityInstance:
        return EntityInstance(type=type, text=text)
    return _entity
