"""
Display utilities for CLI using Rich library.

Provides:
- Themed console output
- Card rendering (suggestion and follow-up prompt buttons)
"""

from typing import List
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.markdown import Markdown
from rich.text import Text
from rich.theme import Theme

from src.core.models import Activity, Card

# Custom theme for the assistant
ASSISTANT_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "red bold",
        "success": "green bold",
        "agent": "blue bold",
        "user": "magenta bold",
        "button": "cyan",
    }
)


class AssistantDisplay:
    """
    Rich-based display manager for the assistant CLI.
    """

    def __init__(self):
        self.console = Console(theme=ASSISTANT_THEME)

    def clear(self):
        """Clear the console."""
        self.console.clear()

    def print_banner(self):
        """Print the application banner."""
        banner = """
╔══════════════════════════════════════════════════════════════════╗
║                  🦷 DENTAL OFFICE ASSISTANT                      ║
║             Clinic questions and appointment booking             ║
╚══════════════════════════════════════════════════════════════════╝
        """
        self.console.print(
            Panel(
                Text(banner.strip(), justify="center"),
                style="bold cyan",
                border_style="cyan",
            )
        )

    def print_help(self):
        """Print help text."""
        help_text = """
[bold]Ask anything about the clinic:[/bold]
  • "What are your opening hours?"
  • "Do you accept insurance?"

[bold]Appointments:[/bold]
  • "What times are available?"
  • "Schedule an appointment for 4 PM"

[bold]Cards:[/bold]
  • Type a button's number or its exact text to pick it

[bold]General:[/bold]
  • [cyan]help[/cyan] - Show this help
  • [cyan]quit[/cyan] / [cyan]exit[/cyan] - Exit the application
        """
        self.console.print(Panel(help_text.strip(), title="Help", border_style="dim"))

    def print_agent(self, message: str):
        """Print agent message."""
        self.console.print()
        self.console.print(
            Panel(
                Markdown(message),
                title="🤖 Assistant",
                title_align="left",
                border_style="blue",
                padding=(1, 2),
            )
        )

    def print_card(self, card: Card):
        """Print a card with numbered buttons."""
        table = Table(title=card.title or None, show_header=False, show_lines=False)
        table.add_column("#", style="dim", width=3)
        table.add_column("Option", style="button")
        for i, button in enumerate(card.buttons, 1):
            table.add_row(str(i), button.title)

        body = card.text or ""
        self.console.print()
        self.console.print(
            Panel(
                Markdown(body) if body else Text(""),
                title="🤖 Assistant",
                title_align="left",
                border_style="blue",
                padding=(1, 2),
            )
        )
        self.console.print(table)

    def print_activities(self, activities: List[Activity]):
        """Print every outbound activity of a turn."""
        for activity in activities:
            if activity.text:
                self.print_agent(activity.text)
            for card in activity.attachments:
                self.print_card(card)

    def print_user_prompt(self) -> str:
        """Print user prompt and get input."""
        self.console.print()
        return self.console.input("[magenta bold]You:[/magenta bold] ")

    def print_error(self, message: str):
        """Print error message."""
        self.console.print(
            Panel(f"[error]{message}[/error]", title="❌ Error", border_style="red")
        )

    def print_warning(self, message: str):
        """Print warning message."""
        self.console.print(f"[warning]⚠️ {message}[/warning]")

    def print_success(self, message: str):
        """Print success message."""
        self.console.print(f"[success]✅ {message}[/success]")

    def print_info(self, message: str):
        """Print info message."""
        self.console.print(f"[info]ℹ️ {message}[/info]")
