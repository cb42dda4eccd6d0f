"""
Knowledge Base Models (Pydantic)

Wire schemas shared by the answering-service client, the dialog and the API.
Field aliases follow the service's camelCase JSON.
"""

from typing import List, Optional, Dict, Any, Union
from pydantic import BaseModel, Field
from enum import Enum


class JoinOperator(str, Enum):
    """How strict filters are combined."""

    AND = "AND"
    OR = "OR"


class RankerType(str, Enum):
    """Ranker used by the knowledge base."""

    DEFAULT = "Default"
    QUESTION_ONLY = "QuestionOnly"
    AUTO_SUGGEST_QUESTION = "AutoSuggestQuestion"


class Metadata(BaseModel):
    """A name/value pair attached to answers, also used as a query filter."""

    name: str
    value: str


class QnARequestContext(BaseModel):
    """Multi-turn context sent with a query."""

    previous_qna_id: int = Field(0, alias="previousQnAId")
    previous_user_query: str = Field("", alias="previousUserQuery")

    class Config:
        populate_by_name = True


class QueryOptions(BaseModel):
    """Options for a single knowledge base query."""

    score_threshold: float = Field(0.3, alias="scoreThreshold", ge=0.0, le=1.0)
    top: int = Field(3, gt=0)
    strict_filters: List[Metadata] = Field(default_factory=list, alias="strictFilters")
    strict_filters_join_operator: JoinOperator = Field(
        JoinOperator.AND, alias="strictFiltersJoinOperator"
    )
    ranker_type: RankerType = Field(RankerType.DEFAULT, alias="rankerType")
    is_test: bool = Field(False, alias="isTest")
    qna_id: int = Field(0, alias="qnaId")  # Target answer id, 0 = none
    context: QnARequestContext = Field(default_factory=QnARequestContext)

    class Config:
        populate_by_name = True


class FollowUpPrompt(BaseModel):
    """A follow-up question the knowledge base attaches to an answer."""

    display_order: int = Field(0, alias="displayOrder")
    display_text: str = Field(..., alias="displayText")
    qna_id: int = Field(..., alias="qnaId")

    class Config:
        populate_by_name = True


class AnswerContext(BaseModel):
    is_context_only: bool = Field(False, alias="isContextOnly")
    prompts: List[FollowUpPrompt] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class Answer(BaseModel):
    """A ranked answer returned by the knowledge base."""

    id: int
    answer: str = ""
    score: float = Field(0.0, ge=0.0, le=1.0)
    questions: List[str] = Field(default_factory=list)
    source: Optional[str] = None
    metadata: List[Metadata] = Field(default_factory=list)
    context: AnswerContext = Field(default_factory=AnswerContext)

    @property
    def prompts(self) -> List[FollowUpPrompt]:
        return self.context.prompts

    @property
    def primary_question(self) -> Optional[str]:
        """First listed source question, used as the suggestion text."""
        return self.questions[0] if self.questions else None

    @property
    def suggestion_text(self) -> str:
        """Text shown on this answer's suggestion button and matched on selection."""
        return self.primary_question or self.answer


class QueryResult(BaseModel):
    """Raw result of a knowledge base query."""

    answers: List[Answer] = Field(default_factory=list)
    active_learning_enabled: bool = Field(False, alias="activeLearningEnabled")

    class Config:
        populate_by_name = True


class FeedbackRecord(BaseModel):
    """Active learning selection reported back to the knowledge base."""

    user_id: str = Field(..., alias="userId")
    user_question: str = Field(..., alias="userQuestion")
    qna_id: str = Field(..., alias="qnaId")

    class Config:
        populate_by_name = True


# --- Outbound messages ---


class ActivityType(str, Enum):
    MESSAGE = "message"
    CONVERSATION_UPDATE = "conversationUpdate"


class CardAction(BaseModel):
    """A button on a card. Clicking it posts `value` back as the user's reply."""

    type: str = "imBack"
    title: str
    value: str


class Card(BaseModel):
    title: str = ""
    text: str = ""
    buttons: List[CardAction] = Field(default_factory=list)


class Activity(BaseModel):
    """An outbound message: plain text, optionally with card attachments."""

    type: ActivityType = ActivityType.MESSAGE
    text: str = ""
    speak: Optional[str] = None
    attachments: List[Card] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, speak: Optional[str] = None) -> "Activity":
        return cls(text=text, speak=speak)


MessageTemplate = Union[str, Activity, Dict[str, Any]]


def bind_template(template: MessageTemplate) -> Activity:
    """Resolve a configured message template to an activity, once."""
    if isinstance(template, Activity):
        return template
    if isinstance(template, str):
        return Activity.from_text(template)
    if isinstance(template, dict):
        return Activity.model_validate(template)
    raise TypeError(f"Unsupported message template: {type(template).__name__}")


class ResponseOptions(BaseModel):
    """How the dialog talks back to the user."""

    active_learning_card_title: str = "Did you mean:"
    card_no_match_text: str = "None of the above."
    no_answer: Activity = Field(
        default_factory=lambda: Activity.from_text("No QnAMaker answers found.")
    )
    card_no_match_response: Activity = Field(
        default_factory=lambda: Activity.from_text("Thanks for the feedback.")
    )


class DialogOptions(BaseModel):
    """Per dialog instance options, persisted with the dialog state."""

    query_options: QueryOptions = Field(default_factory=QueryOptions)
    response_options: ResponseOptions = Field(default_factory=ResponseOptions)
