#!/usr/bin/env python3
"""
Dental Office Assistant CLI

Usage:
    python assistant_cli.py [--mock] [--user USER_ID]

Options:
    --mock      Use a built-in knowledge base, recognizer and scheduler
                (no service keys needed)
    --user      Set user ID sent with active learning feedback

Examples:
    python assistant_cli.py                 # Run against configured services
    python assistant_cli.py --mock          # Run with mock services
"""

import asyncio
import argparse
import re
import sys
from pathlib import Path
from typing import List

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv
load_dotenv()

from src.adapters.luis import IntentRecognizerInterface, RecognizerResult, EntityInstance
from src.adapters.qna import KnowledgeBaseClientInterface
from src.adapters.scheduler import SchedulerInterface
from src.core.models import Answer, FeedbackRecord, QueryOptions, QueryResult


MOCK_ANSWERS = [
    {
        "id": 1,
        "answer": "We are open Monday to Friday, 8am to 5pm.",
        "questions": ["What are your opening hours?", "When are you open?"],
        "keywords": ["hours", "open"],
    },
    {
        "id": 2,
        "answer": "We accept most major dental insurance plans.",
        "questions": ["Do you accept insurance?"],
        "keywords": ["insurance"],
        "prompts": [
            {"displayOrder": 0, "displayText": "Which plans?", "qnaId": 3},
            {"displayOrder": 1, "displayText": "Do you offer payment plans?", "qnaId": 4},
        ],
    },
    {
        "id": 3,
        "answer": "Delta Dental, Cigna, MetLife and Aetna.",
        "questions": ["Which plans?"],
        "keywords": ["plans", "which"],
    },
    {
        "id": 4,
        "answer": "Yes, we offer interest-free payment plans for treatments over $500.",
        "questions": ["Do you offer payment plans?"],
        "keywords": ["payment"],
    },
    {
        "id": 5,
        "answer": "A regular cleaning takes about 45 minutes.",
        "questions": ["How long does a cleaning take?"],
        "keywords": ["cleaning", "clean"],
    },
    {
        "id": 6,
        "answer": "Whitening is done in one 90 minute visit.",
        "questions": ["How does teeth whitening work?"],
        "keywords": ["whitening", "clean"],
    },
]


class MockKnowledgeBase(KnowledgeBaseClientInterface):
    """Keyword-scored knowledge base. Ambiguous keywords produce close, low scores."""

    async def query(self, question: str, options: QueryOptions) -> QueryResult:
        if options.qna_id:
            for item in MOCK_ANSWERS:
                if item["id"] == options.qna_id:
                    return QueryResult(answers=[self._answer(item, 1.0)], active_learning_enabled=True)

        words = set(re.findall(r"[a-z]+", question.lower()))
        scored = []
        for item in MOCK_ANSWERS:
            if question in item["questions"]:
                scored.append((1.0, item))
                continue
            hits = len(words & set(item["keywords"]))
            if hits:
                scored.append((min(0.25 + 0.05 * hits, 0.95), item))

        # Several matches on the same keyword are ambiguous
        if len(scored) > 1 and all(score < 1.0 for score, _ in scored):
            scored = [(0.28 - 0.01 * i, item) for i, (_, item) in enumerate(scored)]

        scored.sort(key=lambda pair: pair[0], reverse=True)
        answers = [self._answer(item, score) for score, item in scored[: options.top]]
        return QueryResult(answers=answers, active_learning_enabled=True)

    def _answer(self, item: dict, score: float) -> Answer:
        return Answer.model_validate({
            "id": item["id"],
            "answer": item["answer"],
            "score": score,
            "questions": item["questions"],
            "context": {"prompts": item.get("prompts", [])},
        })

    async def submit_feedback(self, records: List[FeedbackRecord]) -> bool:
        return True


class MockRecognizer(IntentRecognizerInterface):
    async def recognize(self, text: str) -> RecognizerResult:
        lower = text.lower()
        time_match = re.search(r"\b(\d{1,2}(:\d{2})?\s*(am|pm))\b", lower)

        if "schedule" in lower or "book" in lower:
            instances = {}
            if time_match:
                instances["time"] = [EntityInstance(type="builtin.datetimeV2.time", text=time_match.group(1))]
            return RecognizerResult(
                text=text,
                top_intent="ScheduleAppointment",
                intents={"ScheduleAppointment": 0.9},
                instances=instances,
            )

        if "available" in lower or "availability" in lower:
            return RecognizerResult(
                text=text,
                top_intent="GetAvailability",
                intents={"GetAvailability": 0.9},
                instances={},
            )

        return RecognizerResult(text=text, top_intent="None", intents={"None": 0.8})


class MockScheduler(SchedulerInterface):
    async def get_availability(self) -> str:
        return "Current time slots available: \n8am\n10am\n2pm\n4pm"

    async def schedule_appointment(self, time: str) -> str:
        return f"An appointment is set for {time}."


def mock_bot_factory(store):
    from src.conversation.bot import DentalAssistantBot, HELP_TEXT
    from src.conversation.dialogue import QnADialog

    dialog = QnADialog(MockKnowledgeBase(), store, no_answer=HELP_TEXT)
    return DentalAssistantBot(dialog, MockRecognizer(), MockScheduler())


async def run_cli(mock: bool = False, user_id: str = "cli_user"):
    """Run the CLI with specified configuration."""
    from src.cli.app import AssistantCLI
    from src.cli.display import AssistantDisplay
    from src.conversation.bot import DentalAssistantBot

    display = AssistantDisplay()

    if mock:
        display.print_info("Running in MOCK mode (no service calls)")
        bot_factory = mock_bot_factory
    else:
        bot_factory = DentalAssistantBot.from_settings
        try:
            from src.core.config import settings
            from src.adapters.qna import QnAMakerEndpoint
            QnAMakerEndpoint(
                settings.QNA_KNOWLEDGE_BASE_ID or "",
                settings.QNA_ENDPOINT_KEY or "",
                settings.QNA_ENDPOINT_HOSTNAME or "",
            )
        except ValueError as e:
            display.print_error(f"Missing configuration: {e}")
            display.console.print("""
[bold]Setup required:[/bold]

1. Create a .env file with your service settings:
   [cyan]QNA_KNOWLEDGE_BASE_ID=...[/cyan]
   [cyan]QNA_ENDPOINT_KEY=...[/cyan]
   [cyan]QNA_ENDPOINT_HOSTNAME=...[/cyan]
   [cyan]LUIS_APP_ID=... LUIS_API_KEY=... LUIS_API_HOSTNAME=...[/cyan]
   [cyan]SCHEDULER_URL=...[/cyan]

2. Or run in mock mode for testing:
   [cyan]python assistant_cli.py --mock[/cyan]
            """)
            sys.exit(1)

    cli = AssistantCLI(bot_factory=bot_factory, user_id=user_id)
    await cli.run()


def main():
    """Parse arguments and run CLI."""
    parser = argparse.ArgumentParser(
        description="Dental Office Assistant CLI"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use mock services for testing"
    )
    parser.add_argument(
        "--user",
        default="cli_user",
        help="User ID sent with feedback"
    )

    args = parser.parse_args()

    from src.core.logging_config import configure_logging
    configure_logging("WARNING")

    try:
        asyncio.run(run_cli(mock=args.mock, user_id=args.user))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
