"""
QnADialog - Multi-turn knowledge base dialog.

Waterfall, one pass per user message:
1. QUERY     - Ask the knowledge base; low-confidence, close answers
               become an active learning card (end of turn)
2. TRAIN     - If a card was shown, the reply either picks a suggestion
               (feedback is sent), says "none of the above" (end), or is
               a new question (back to QUERY)
3. FOLLOW_UP - Answers with follow-up prompts are shown as a prompts card
               (end of turn)
4. DISPLAY   - Send the answer or the no-answer message (end)

State between turns lives in a DialogStateStore and is written only
after all stages of a turn have run.
"""

import logging
from typing import Optional, List, Union, Callable, Awaitable, Dict
from dataclasses import dataclass, field
from enum import Enum

from src.adapters.qna import KnowledgeBaseClientInterface
from src.conversation.active_learning import (
    ActiveLearningSelector,
    DEFAULT_LOW_CONFIDENCE_THRESHOLD,
    top_answer,
)
from src.conversation.context import (
    DialogState,
    DialogStateStore,
    DialogStep,
    TurnContext,
)
from src.conversation.follow_up import FollowUpPromptManager
from src.conversation.presenter import ResponsePresenter
from src.conversation.training import FeedbackCoordinator, TrainingDecision
from src.core.models import (
    ActivityType,
    Answer,
    DialogOptions,
    JoinOperator,
    Metadata,
    MessageTemplate,
    QnARequestContext,
    QueryOptions,
    RankerType,
    ResponseOptions,
    bind_template,
)

logger = logging.getLogger(__name__)


class TurnStatus(str, Enum):
    WAITING = "waiting"        # Dialog is active, waiting for the next message
    COMPLETE = "complete"      # Dialog ended this turn


@dataclass
class TurnOutcome:
    """Result of running the dialog for one user message."""
    status: TurnStatus
    result: List[Answer] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == TurnStatus.WAITING


class StepAction(str, Enum):
    NEXT = "next"
    END_OF_TURN = "end_of_turn"
    END_DIALOG = "end_dialog"
    RESTART = "restart"


@dataclass
class StepTransition:
    action: StepAction
    result: List[Answer] = field(default_factory=list)


StepHandler = Callable[[TurnContext, DialogState, List[Answer]], Awaitable[StepTransition]]


class QnADialog:
    """
    A dialog over one knowledge base, supporting follow-up prompts and
    active learning.

    Default response texts match the knowledge base service's own
    defaults and can be overridden per instance or per start() call.
    """

    DEFAULT_THRESHOLD = 0.3
    DEFAULT_TOP = 3
    DEFAULT_NO_ANSWER = "No QnAMaker answers found."
    DEFAULT_CARD_TITLE = "Did you mean:"
    DEFAULT_CARD_NO_MATCH_TEXT = "None of the above."
    DEFAULT_CARD_NO_MATCH_RESPONSE = "Thanks for the feedback."

    def __init__(
        self,
        client: KnowledgeBaseClientInterface,
        store: DialogStateStore,
        dialog_id: str = "QnADialog",
        threshold: float = DEFAULT_THRESHOLD,
        top: int = DEFAULT_TOP,
        no_answer: MessageTemplate = DEFAULT_NO_ANSWER,
        active_learning_card_title: str = DEFAULT_CARD_TITLE,
        card_no_match_text: str = DEFAULT_CARD_NO_MATCH_TEXT,
        card_no_match_response: MessageTemplate = DEFAULT_CARD_NO_MATCH_RESPONSE,
        strict_filters: Optional[List[Metadata]] = None,
        strict_filters_join_operator: JoinOperator = JoinOperator.AND,
        ranker_type: RankerType = RankerType.DEFAULT,
        is_test: bool = False,
        active_learning_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
    ):
        self.client = client
        self.store = store
        self.dialog_id = dialog_id

        self.threshold = threshold
        self.top = top
        self.strict_filters = list(strict_filters or [])
        self.strict_filters_join_operator = strict_filters_join_operator
        self.ranker_type = ranker_type
        self.is_test = is_test

        # Templates are bound once, here
        self.no_answer = bind_template(no_answer)
        self.card_no_match_response = bind_template(card_no_match_response)
        self.active_learning_card_title = active_learning_card_title
        self.card_no_match_text = card_no_match_text

        self.selector = ActiveLearningSelector(client, threshold=active_learning_threshold)
        self.follow_ups = FollowUpPromptManager()
        self.trainer = FeedbackCoordinator(client)
        self.presenter = ResponsePresenter()

        self._steps: Dict[DialogStep, StepHandler] = {
            DialogStep.QUERY: self._call_generate_answer,
            DialogStep.TRAIN: self._call_train,
            DialogStep.FOLLOW_UP: self._check_for_multi_turn_prompt,
            DialogStep.DISPLAY: self._display_qna_result,
        }

    # --- Options ---

    def default_options(self) -> DialogOptions:
        """Options a new dialog instance starts with."""
        return DialogOptions(
            query_options=QueryOptions(
                score_threshold=self.threshold,
                top=self.top,
                strict_filters=self.strict_filters,
                strict_filters_join_operator=self.strict_filters_join_operator,
                ranker_type=self.ranker_type,
                is_test=self.is_test,
                qna_id=0,
            ),
            response_options=ResponseOptions(
                active_learning_card_title=self.active_learning_card_title,
                card_no_match_text=self.card_no_match_text,
                no_answer=self.no_answer,
                card_no_match_response=self.card_no_match_response,
            ),
        )

    def _merge_options(self, options: Union[DialogOptions, dict, None]) -> DialogOptions:
        dialog_options = self.default_options()
        if options is None:
            return dialog_options
        if isinstance(options, DialogOptions):
            return options.model_copy(deep=True)
        # Partial override: replaces whole top-level sections
        update = {}
        for key, value in options.items():
            if key not in DialogOptions.model_fields:
                continue
            if isinstance(value, dict):
                if key == "response_options":
                    value = self._bind_response_templates(value)
                value = DialogOptions.model_fields[key].annotation.model_validate(value)
            update[key] = value
        return dialog_options.model_copy(update=update, deep=True)

    @staticmethod
    def _bind_response_templates(section: dict) -> dict:
        """Resolve text or dict message templates in a response options override."""
        bound = dict(section)
        for name in ("no_answer", "card_no_match_response"):
            if name in bound:
                bound[name] = bind_template(bound[name])
        return bound

    # --- Public API ---

    async def start(
        self,
        turn: TurnContext,
        options: Union[DialogOptions, dict, None] = None,
    ) -> TurnOutcome:
        """Begin a new dialog instance with this turn's message."""
        if turn.type != ActivityType.MESSAGE:
            return TurnOutcome(TurnStatus.COMPLETE)

        state = DialogState(
            conversation_id=turn.conversation_id,
            dialog_id=self.dialog_id,
            options=self._merge_options(options),
        )
        logger.info(f"Dialog {self.dialog_id} started for {turn.conversation_id}")
        return await self._run(turn, state, DialogStep.QUERY)

    async def continue_turn(self, turn: TurnContext) -> TurnOutcome:
        """Resume an active dialog instance, or start one if none is active."""
        state = await self.store.load(turn.conversation_id, self.dialog_id)
        if state is None:
            return await self.start(turn)
        return await self._run(turn, state, state.step)

    async def is_active(self, conversation_id: str) -> bool:
        return await self.store.load(conversation_id, self.dialog_id) is not None

    async def end(self, conversation_id: str):
        """Drop any active dialog instance for the conversation."""
        await self.store.delete(conversation_id, self.dialog_id)

    # --- Waterfall ---

    async def _run(self, turn: TurnContext, state: DialogState, step: DialogStep) -> TurnOutcome:
        result: List[Answer] = []

        while True:
            logger.debug(f"Dialog {turn.conversation_id}: step {step.name}")
            transition = await self._steps[step](turn, state, result)

            if transition.action == StepAction.NEXT:
                step = DialogStep(step + 1)
                result = transition.result
                continue

            if transition.action == StepAction.RESTART:
                logger.info(f"Dialog {turn.conversation_id}: restarting with a new query")
                step = DialogStep.QUERY
                result = []
                continue

            if transition.action == StepAction.END_OF_TURN:
                state.step = DialogStep(step + 1)
                await self.store.save(state)
                return TurnOutcome(TurnStatus.WAITING)

            await self.store.delete(state.conversation_id, state.dialog_id)
            logger.info(f"Dialog {self.dialog_id} ended for {turn.conversation_id}")
            return TurnOutcome(TurnStatus.COMPLETE, transition.result)

    async def _call_generate_answer(
        self, turn: TurnContext, state: DialogState, result: List[Answer]
    ) -> StepTransition:
        """Query the knowledge base; show an active learning card if answers are close."""
        query_options = state.options.query_options
        query_options.qna_id = 0
        query_options.context = QnARequestContext()

        state.current_query = turn.text
        previous_qna_id = self.follow_ups.previous_answer_id(state)

        if previous_qna_id > 0:
            query_options.context = QnARequestContext(previous_qna_id=previous_qna_id)
            target = self.follow_ups.resolve(state, turn.text)
            if target is not None:
                query_options.qna_id = target
            self.follow_ups.clear(state)

        response = await self.client.query(turn.text, query_options)

        state.previous_qna_id = -1
        state.candidates = list(response.answers)

        candidates = self.selector.select(response)
        if candidates:
            state.candidates = candidates
            response_options = state.options.response_options
            card = self.presenter.suggestions_card(
                [a.suggestion_text for a in candidates],
                response_options.active_learning_card_title,
                response_options.card_no_match_text,
            )
            await turn.send_activity(card)
            return StepTransition(StepAction.END_OF_TURN)

        best = top_answer(response.answers)
        state.candidates = [best] if best is not None else []
        return StepTransition(StepAction.NEXT, list(state.candidates))

    async def _call_train(
        self, turn: TurnContext, state: DialogState, result: List[Answer]
    ) -> StepTransition:
        """Consume the user's choice from an active learning card."""
        if len(state.candidates) <= 1:
            return StepTransition(StepAction.NEXT, result)

        response_options = state.options.response_options
        outcome = await self.trainer.evaluate(
            state.candidates,
            turn.text,
            user_id=turn.user_id,
            user_question=state.current_query,
            no_match_text=response_options.card_no_match_text,
        )

        if outcome.decision == TrainingDecision.SELECTED:
            state.candidates = [outcome.answer]
            return StepTransition(StepAction.NEXT, [outcome.answer])

        if outcome.decision == TrainingDecision.NO_MATCH:
            await self.presenter.send_template(turn, response_options.card_no_match_response)
            return StepTransition(StepAction.END_DIALOG)

        return StepTransition(StepAction.RESTART)

    async def _check_for_multi_turn_prompt(
        self, turn: TurnContext, state: DialogState, result: List[Answer]
    ) -> StepTransition:
        """Show the answer with its follow-up prompts, if it has any."""
        if result and result[0].prompts:
            answer = result[0]
            self.follow_ups.persist(state, answer)
            await turn.send_activity(self.presenter.prompts_card(answer))
            return StepTransition(StepAction.END_OF_TURN)

        return StepTransition(StepAction.NEXT, result)

    async def _display_qna_result(
        self, turn: TurnContext, state: DialogState, result: List[Answer]
    ) -> StepTransition:
        """Send the final answer, the no-answer message, or the no-match response."""
        response_options = state.options.response_options

        if turn.text == response_options.card_no_match_text:
            await self.presenter.send_template(turn, response_options.card_no_match_response)
            return StepTransition(StepAction.END_DIALOG)

        if self.follow_ups.has_pending(state):
            return StepTransition(StepAction.RESTART)

        if result:
            await self.presenter.send_answer(turn, result[0])
        else:
            await self.presenter.send_template(turn, response_options.no_answer)

        return StepTransition(StepAction.END_DIALOG, result)
