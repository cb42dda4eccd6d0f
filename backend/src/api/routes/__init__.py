"""
API Routes

Available routers:
- conversation: Conversation turns against the dental office assistant
"""

from src.api.routes import conversation

__all__ = ["conversation"]
