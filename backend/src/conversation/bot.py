"""
DentalAssistantBot - Routes each message to the scheduler or the
knowledge base dialog.

Routing:
- An active knowledge base dialog always gets the message first
  (the user is answering a card)
- GetAvailability (score > 0.5)      -> scheduler availability
- ScheduleAppointment (score > 0.5,
  with a time entity)                -> book the appointment
- Anything else                      -> knowledge base dialog
"""

import logging
from typing import List

from src.adapters.luis import IntentRecognizerInterface
from src.adapters.scheduler import SchedulerInterface
from src.conversation.context import TurnContext
from src.conversation.dialogue import QnADialog
from src.core.models import Activity, ActivityType

logger = logging.getLogger(__name__)

INTENT_GET_AVAILABILITY = "GetAvailability"
INTENT_SCHEDULE_APPOINTMENT = "ScheduleAppointment"
INTENT_SCORE_THRESHOLD = 0.5

WELCOME_TEXT = (
    "Welcome to Dental Office Assistant Chatbot!  I can help you answer your "
    "questions concerning the clinic or you may schedule an appointment.  "
    'You can say "schedule an appointment for 4 PM"'
)

HELP_TEXT = (
    "I'm not sure I can answer your question. "
    "I can schedule your appointment with the doctor "
    "Or you can ask me questions concerning the clinic."
)


class DentalAssistantBot:
    """Top-level message handler for the dental office assistant."""

    def __init__(
        self,
        dialog: QnADialog,
        recognizer: IntentRecognizerInterface,
        scheduler: SchedulerInterface,
    ):
        if dialog is None:
            raise ValueError("[DentalAssistantBot]: Missing parameter. dialog is required")
        self.dialog = dialog
        self.recognizer = recognizer
        self.scheduler = scheduler

    async def on_turn(self, turn: TurnContext) -> List[Activity]:
        """Handle one incoming activity and return what was sent back."""
        if turn.type == ActivityType.MESSAGE:
            await self.on_message(turn)
        elif turn.type == ActivityType.CONVERSATION_UPDATE:
            await self.on_members_added(turn)
        return turn.responses

    async def on_message(self, turn: TurnContext):
        if await self.dialog.is_active(turn.conversation_id):
            await self.dialog.continue_turn(turn)
            return

        recognition = await self.recognizer.recognize(turn.text)
        top_intent = recognition.top_intent

        if (
            top_intent == INTENT_GET_AVAILABILITY
            and recognition.score(INTENT_GET_AVAILABILITY) > INTENT_SCORE_THRESHOLD
            and recognition.instances is not None
        ):
            availability = await self.scheduler.get_availability()
            await turn.send_activity(Activity.from_text(availability))
            return

        if (
            top_intent == INTENT_SCHEDULE_APPOINTMENT
            and recognition.score(INTENT_SCHEDULE_APPOINTMENT) > INTENT_SCORE_THRESHOLD
            and recognition.first_instance("time") is not None
        ):
            scheduled_time = recognition.first_instance("time").text
            confirmation = await self.scheduler.schedule_appointment(scheduled_time)
            await turn.send_activity(Activity.from_text(confirmation))
            return

        logger.info(f"Routing to knowledge base (intent: {top_intent})")
        await self.dialog.start(turn)

    async def on_members_added(self, turn: TurnContext):
        for member_id in turn.members_added:
            if member_id != turn.recipient_id:
                await turn.send_activity(Activity.from_text(WELCOME_TEXT, speak=WELCOME_TEXT))

    @classmethod
    def from_settings(cls, store, settings=None) -> "DentalAssistantBot":
        """Wire the bot from configuration. Missing service settings raise ValueError."""
        from src.adapters.luis import IntentRecognizer
        from src.adapters.qna import KnowledgeBaseFactory
        from src.adapters.scheduler import DentistScheduler

        if settings is None:
            from src.core.config import settings

        dialog = QnADialog(
            client=KnowledgeBaseFactory.create_client(
                knowledge_base_id=settings.QNA_KNOWLEDGE_BASE_ID,
                endpoint_key=settings.QNA_ENDPOINT_KEY,
                host=settings.QNA_ENDPOINT_HOSTNAME,
            ),
            store=store,
            threshold=settings.QNA_SCORE_THRESHOLD,
            top=settings.QNA_TOP,
            is_test=settings.QNA_IS_TEST,
            no_answer=HELP_TEXT,
            active_learning_threshold=settings.ACTIVE_LEARNING_THRESHOLD,
        )
        recognizer = IntentRecognizer(
            app_id=settings.LUIS_APP_ID,
            api_key=settings.LUIS_API_KEY,
            hostname=settings.LUIS_API_HOSTNAME,
            slot=settings.LUIS_SLOT,
        )
        scheduler = DentistScheduler(settings.SCHEDULER_URL)
        return cls(dialog=dialog, recognizer=recognizer, scheduler=scheduler)
