"""
End-to-end tests for the knowledge base dialog waterfall.

Each test drives QnADialog turn by turn against a scripted knowledge base
and checks what was sent, what was queried and what was persisted.
"""
import logging

import httpx
import pytest

from conftest import MockKnowledgeBase, make_answer
from src.conversation.context import DialogState, DialogStep, TurnContext
from src.conversation.dialogue import QnADialog, TurnStatus
from src.core.models import ActivityType, QueryResult


CLEANING = "How long does a cleaning take?"
WHITENING = "How does teeth whitening work?"


@pytest.fixture
def kb():
    return MockKnowledgeBase({
        "hours?": QueryResult(answers=[make_answer(1, 0.9, text="We open at 8am.")]),
        "clean": QueryResult(
            answers=[
                make_answer(5, 0.28, question=CLEANING, text="About 45 minutes."),
                make_answer(6, 0.27, question=WHITENING, text="One 90 minute visit."),
            ],
            active_learning_enabled=True,
        ),
        "insurance": QueryResult(
            answers=[
                make_answer(
                    2, 0.9,
                    text="We accept most plans.",
                    prompts={"Which plans?": 3, "Payment plans?": 4},
                )
            ]
        ),
        "qna:3": QueryResult(answers=[make_answer(3, 1.0, text="Delta and Cigna.")]),
    })


async def _show_suggestions(dialog, turn):
    t = turn("clean")
    outcome = await dialog.start(t)
    assert outcome.status == TurnStatus.WAITING
    return t


class TestSingleTurn:
    @pytest.mark.asyncio
    async def test_confident_answer_ends_dialog(self, dialog, store, turn):
        t = turn("hours?")
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [a.id for a in outcome.result] == [1]
        assert [r.text for r in t.responses] == ["We open at 8am."]
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_no_answers_sends_no_answer_and_keeps_no_state(self, dialog, store, turn):
        t = turn("parking?")
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert outcome.result == []
        assert [r.text for r in t.responses] == ["No QnAMaker answers found."]
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_close_scores_above_threshold_show_no_card(self, kb, dialog, turn):
        kb.responses["crowns?"] = QueryResult(
            answers=[make_answer(7, 0.31), make_answer(8, 0.30)],
            active_learning_enabled=True,
        )
        t = turn("crowns?")
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert t.responses[0].attachments == []
        assert t.responses[0].text == "Answer 7"

    @pytest.mark.asyncio
    async def test_query_uses_configured_options(self, kb, store, turn):
        dialog = QnADialog(kb, store, threshold=0.5, top=5, is_test=True)
        await dialog.start(turn("hours?"))

        _, options = kb.queries[0]
        assert options.score_threshold == 0.5
        assert options.top == 5
        assert options.is_test is True
        assert options.qna_id == 0

    @pytest.mark.asyncio
    async def test_start_options_override_responses(self, dialog, turn):
        t = turn("parking?")
        await dialog.start(
            t, {"response_options": {"no_answer": {"text": "Sorry, no idea."}}}
        )

        assert [r.text for r in t.responses] == ["Sorry, no idea."]

    @pytest.mark.asyncio
    async def test_start_options_accept_text_templates(self, dialog, store, turn):
        options = {
            "response_options": {
                "no_answer": "Sorry, no idea.",
                "card_no_match_response": "Got it.",
            }
        }
        t = turn("parking?")
        outcome = await dialog.start(t, options)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Sorry, no idea."]

        t = turn("clean")
        await dialog.start(t, options)
        t = turn("None of the above.")
        await dialog.continue_turn(t)
        assert [r.text for r in t.responses] == ["Got it."]
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_no_match_text_on_first_turn_ends(self, kb, dialog, store, turn):
        t = turn("None of the above.")
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Thanks for the feedback."]
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_user_text_stays_out_of_info_logs(self, dialog, turn, caplog):
        caplog.set_level(logging.INFO)
        secret = "my name is Jane Roe and my tooth hurts"

        await dialog.start(turn("clean"))
        await dialog.continue_turn(turn(WHITENING))
        await dialog.start(turn("insurance"))
        await dialog.continue_turn(turn(secret))

        for record in caplog.records:
            if record.levelno >= logging.INFO:
                assert secret not in record.getMessage()
                assert "clean" not in record.getMessage()

    @pytest.mark.asyncio
    async def test_non_message_turn_does_nothing(self, kb, dialog):
        t = TurnContext(conversation_id="conv-1", type=ActivityType.CONVERSATION_UPDATE)
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert kb.queries == []
        assert t.responses == []


class TestActiveLearning:
    @pytest.mark.asyncio
    async def test_card_lists_candidates_and_no_match_button(self, dialog, store, turn):
        t = await _show_suggestions(dialog, turn)

        card = t.responses[0].attachments[0]
        assert card.text == "Did you mean:"
        assert [b.value for b in card.buttons] == [CLEANING, WHITENING, "None of the above."]

        state = await store.load("conv-1", "QnADialog")
        assert state.step == DialogStep.TRAIN
        assert state.current_query == "clean"
        assert [a.id for a in state.candidates] == [5, 6]

    @pytest.mark.asyncio
    async def test_selection_sends_feedback_and_answer(self, kb, dialog, store, turn):
        await _show_suggestions(dialog, turn)

        t = turn(WHITENING)
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["One 90 minute visit."]
        assert len(kb.feedback) == 1
        assert kb.feedback[0].user_question == "clean"
        assert kb.feedback[0].qna_id == "6"
        assert kb.feedback[0].user_id == "user-1"
        # The selection is not queried again
        assert len(kb.queries) == 1
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_no_match_acknowledges_and_ends(self, kb, dialog, store, turn):
        await _show_suggestions(dialog, turn)

        t = turn("None of the above.")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Thanks for the feedback."]
        assert kb.feedback == []
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_other_reply_is_a_new_question(self, kb, dialog, store, turn):
        await _show_suggestions(dialog, turn)

        t = turn("hours?")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["We open at 8am."]
        assert [q for q, _ in kb.queries] == ["clean", "hours?"]
        assert kb.feedback == []
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_selection_with_prompts_shows_prompts_card(self, kb, dialog, store, turn):
        kb.responses["coverage"] = QueryResult(
            answers=[
                make_answer(5, 0.28, question="A?", text="Plan A.", prompts={"Yes": 7}),
                make_answer(6, 0.27, question="B?", text="Plan B."),
            ],
            active_learning_enabled=True,
        )
        await dialog.start(turn("coverage"))

        t = turn("A?")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.WAITING
        card = t.responses[0].attachments[0]
        assert card.text == "Plan A."
        assert [b.value for b in card.buttons] == ["Yes"]
        assert kb.feedback[0].qna_id == "5"

        state = await store.load("conv-1", "QnADialog")
        assert state.step == DialogStep.DISPLAY
        assert state.previous_qna_id == 5
        assert state.prompt_map == {"Yes": 7}

    @pytest.mark.asyncio
    async def test_candidate_without_questions_is_selectable(self, kb, dialog, turn):
        untitled = make_answer(6, 0.27, text="Whitening takes 90 minutes.")
        untitled.questions = []
        kb.responses["clean"] = QueryResult(
            answers=[make_answer(5, 0.28, question=CLEANING), untitled],
            active_learning_enabled=True,
        )
        t = turn("clean")
        await dialog.start(t)
        buttons = [b.value for b in t.responses[0].attachments[0].buttons]
        assert buttons[1] == "Whitening takes 90 minutes."

        t = turn(buttons[1])
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Whitening takes 90 minutes."]
        assert kb.feedback[0].qna_id == "6"
        assert len(kb.queries) == 1

    @pytest.mark.asyncio
    async def test_custom_card_texts(self, kb, store, turn):
        dialog = QnADialog(
            kb, store,
            active_learning_card_title="Pick one:",
            card_no_match_text="Neither",
            card_no_match_response="Noted!",
        )
        t = turn("clean")
        await dialog.start(t)
        card = t.responses[0].attachments[0]
        assert card.text == "Pick one:"
        assert card.buttons[-1].value == "Neither"

        t = turn("Neither")
        await dialog.continue_turn(t)
        assert [r.text for r in t.responses] == ["Noted!"]


class TestFollowUpPrompts:
    @pytest.mark.asyncio
    async def test_answer_with_prompts_waits_for_choice(self, dialog, store, turn):
        t = turn("insurance")
        outcome = await dialog.start(t)

        assert outcome.status == TurnStatus.WAITING
        card = t.responses[0].attachments[0]
        assert card.text == "We accept most plans."
        assert [b.value for b in card.buttons] == ["Which plans?", "Payment plans?"]

        state = await store.load("conv-1", "QnADialog")
        assert state.previous_qna_id == 2
        assert state.prompt_map == {"Which plans?": 3, "Payment plans?": 4}

    @pytest.mark.asyncio
    async def test_prompt_choice_queries_target_answer(self, kb, dialog, store, turn):
        await dialog.start(turn("insurance"))

        t = turn("Which plans?")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Delta and Cigna."]
        question, options = kb.queries[-1]
        assert question == "Which plans?"
        assert options.qna_id == 3
        assert options.context.previous_qna_id == 2
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_free_text_after_prompts_keeps_context(self, kb, dialog, turn):
        await dialog.start(turn("insurance"))

        t = turn("hours?")
        await dialog.continue_turn(t)

        _, options = kb.queries[-1]
        assert options.qna_id == 0
        assert options.context.previous_qna_id == 2
        assert [r.text for r in t.responses] == ["We open at 8am."]

    @pytest.mark.asyncio
    async def test_no_match_text_after_prompts_ends(self, kb, dialog, store, turn):
        await dialog.start(turn("insurance"))

        t = turn("None of the above.")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["Thanks for the feedback."]
        assert len(kb.queries) == 1
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_anchor_without_prompts_queries_fresh(self, kb, dialog, store, turn):
        await store.save(DialogState(
            conversation_id="conv-1",
            dialog_id="QnADialog",
            options=dialog.default_options(),
            step=DialogStep.DISPLAY,
            previous_qna_id=9,
        ))

        t = turn("hours?")
        await dialog.continue_turn(t)

        _, options = kb.queries[-1]
        assert options.qna_id == 0
        assert options.context.previous_qna_id == 9
        assert [r.text for r in t.responses] == ["We open at 8am."]


class TestStatePersistence:
    @pytest.mark.asyncio
    async def test_service_error_leaves_state_unchanged(self, kb, dialog, store, turn):
        await dialog.start(turn("insurance"))
        before = (await store.load("conv-1", "QnADialog")).to_dict()

        kb.fail_next_query = httpx.ConnectError("knowledge base down")
        with pytest.raises(httpx.ConnectError):
            await dialog.continue_turn(turn("Which plans?"))

        after = (await store.load("conv-1", "QnADialog")).to_dict()
        assert after == before

        # The retry picks up where the failed turn left off
        t = turn("Which plans?")
        await dialog.continue_turn(t)
        assert [r.text for r in t.responses] == ["Delta and Cigna."]

    @pytest.mark.asyncio
    async def test_reading_state_does_not_change_it(self, dialog, store, turn):
        await dialog.start(turn("insurance"))

        first = await store.load("conv-1", "QnADialog")
        first.prompt_map["Injected"] = 99
        assert await dialog.is_active("conv-1")
        second = await store.load("conv-1", "QnADialog")

        assert "Injected" not in second.prompt_map
        assert second.to_dict() == (await store.load("conv-1", "QnADialog")).to_dict()

    @pytest.mark.asyncio
    async def test_conversations_are_isolated(self, dialog, store, turn):
        await dialog.start(turn("clean", conversation_id="a"))
        await dialog.start(turn("insurance", conversation_id="b"))

        t = turn("Which plans?", conversation_id="a")
        await dialog.continue_turn(t)

        # "a" was waiting on a suggestions card, so the prompt text is a new question
        assert t.responses[0].text == "No QnAMaker answers found."
        assert (await store.load("b", "QnADialog")).previous_qna_id == 2

    @pytest.mark.asyncio
    async def test_end_drops_active_dialog(self, dialog, turn):
        await dialog.start(turn("clean"))
        assert await dialog.is_active("conv-1")

        await dialog.end("conv-1")
        assert not await dialog.is_active("conv-1")

    @pytest.mark.asyncio
    async def test_continue_without_state_starts_new_dialog(self, dialog, turn):
        t = turn("hours?")
        outcome = await dialog.continue_turn(t)

        assert outcome.status == TurnStatus.COMPLETE
        assert [r.text for r in t.responses] == ["We open at 8am."]
