"""
ResponsePresenter - Builds and sends the dialog's outbound messages.
"""

from typing import List

from src.conversation.context import TurnContext
from src.core.models import Activity, Answer, Card, CardAction


class ResponsePresenter:
    """Formatting only. Send errors propagate to the caller."""

    def suggestions_card(
        self,
        suggestions: List[str],
        card_title: str,
        card_no_match_text: str,
    ) -> Activity:
        """Active learning card: one button per suggestion plus a 'no match' button."""
        buttons = [CardAction(title=s, value=s) for s in suggestions]
        buttons.append(CardAction(title=card_no_match_text, value=card_no_match_text))
        return Activity(attachments=[Card(text=card_title, buttons=buttons)])

    def prompts_card(self, answer: Answer, card_title: str = "") -> Activity:
        """Answer text with one button per follow-up prompt."""
        buttons = [
            CardAction(title=p.display_text, value=p.display_text)
            for p in sorted(answer.prompts, key=lambda p: p.display_order)
        ]
        return Activity(
            attachments=[Card(title=card_title, text=answer.answer, buttons=buttons)]
        )

    async def send_answer(self, turn: TurnContext, answer: Answer):
        await turn.send_activity(Activity.from_text(answer.answer))

    async def send_template(self, turn: TurnContext, activity: Activity):
        await turn.send_activity(activity.model_copy(deep=True))
