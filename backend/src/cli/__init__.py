"""
CLI Module - Interactive command-line interface for the dental office assistant.

Features:
- Colorful output using Rich
- Numbered card buttons
- Interactive conversation flow
"""

from src.cli.app import AssistantCLI
from src.cli.display import AssistantDisplay

__all__ = ["AssistantCLI", "AssistantDisplay"]
