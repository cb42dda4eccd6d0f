"""
AssistantCLI - Interactive command-line interface for the dental office assistant.

Features:
- Full conversation flow: knowledge base answers, "Did you mean" cards,
  follow-up prompts, appointment booking
- Pick card buttons by number
- Colorful Rich-based output
"""

import os
import uuid
from typing import Optional, List

from src.cli.display import AssistantDisplay
from src.conversation.bot import DentalAssistantBot
from src.conversation.context import (
    TurnContext,
    DialogStateStore,
    MemoryDialogStateStore,
    RedisDialogStateStore,
)
from src.core.models import Activity, ActivityType


class AssistantCLI:
    """
    Interactive CLI for the assistant.

    Manages the conversation loop.
    """

    def __init__(
        self,
        bot_factory,
        user_id: str = "cli_user",
        redis_url: Optional[str] = None,
    ):
        self.bot_factory = bot_factory
        self.user_id = user_id
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")

        self.display = AssistantDisplay()
        self.store: Optional[DialogStateStore] = None
        self.bot: Optional[DentalAssistantBot] = None
        self.conversation_id: Optional[str] = None
        self._last_buttons: List[str] = []
        self._running = False

    async def initialize(self):
        """Initialize the CLI components."""
        self.display.print_info("Initializing assistant...")

        redis_store = RedisDialogStateStore()
        try:
            await redis_store.connect(self.redis_url)
            self.store = redis_store
            self.display.print_success("Connected to Redis")
        except Exception as e:
            self.display.print_warning(f"Redis not available: {e}")
            self.display.print_info("Running in memory-only mode")
            self.store = MemoryDialogStateStore()

        self.bot = self.bot_factory(self.store)
        self.conversation_id = str(uuid.uuid4())

        self.display.print_success("Ready!")

        welcome = await self.bot.on_turn(
            TurnContext(
                conversation_id=self.conversation_id,
                user_id=self.user_id,
                type=ActivityType.CONVERSATION_UPDATE,
                members_added=[self.user_id],
            )
        )
        self._show(welcome)

    async def cleanup(self):
        """Cleanup resources."""
        if self.store:
            await self.store.close()

    async def run(self):
        """Main CLI loop."""
        self.display.clear()
        self.display.print_banner()
        self.display.print_help()

        await self.initialize()

        self._running = True
        while self._running:
            try:
                user_input = self.display.print_user_prompt()

                if not user_input.strip():
                    continue

                # Check for exit commands
                if user_input.lower() in ("quit", "exit", "q"):
                    self.display.print_info("Goodbye!")
                    break

                # Check for help command
                if user_input.lower() in ("help", "?"):
                    self.display.print_help()
                    continue

                await self._process_message(self._resolve_button(user_input))

            except KeyboardInterrupt:
                self.display.print_info("\nInterrupted. Type 'quit' to exit.")
            except EOFError:
                # End of input (e.g., piped input)
                self.display.print_info("\nEnd of input. Goodbye!")
                break
            except Exception as e:
                self.display.print_error(f"Error: {e}")

        await self.cleanup()

    def _resolve_button(self, user_input: str) -> str:
        """Map a button number from the last card to the button's value."""
        text = user_input.strip()
        if text.isdigit() and self._last_buttons:
            index = int(text) - 1
            if 0 <= index < len(self._last_buttons):
                return self._last_buttons[index]
        return user_input

    def _show(self, activities: List[Activity]):
        self.display.print_activities(activities)
        self._last_buttons = [
            button.value
            for activity in activities
            for card in activity.attachments
            for button in card.buttons
        ]

    async def _process_message(self, message: str):
        """Process a user message and display the response."""
        if not self.bot or not self.conversation_id:
            self.display.print_error("Not initialized")
            return

        turn = TurnContext(
            conversation_id=self.conversation_id,
            text=message,
            user_id=self.user_id,
            activity_id=str(uuid.uuid4()),
        )

        with self.display.console.status("[bold cyan]Thinking...[/bold cyan]"):
            activities = await self.bot.on_turn(turn)

        self._show(activities)
