"""
Conversation API Routes

Endpoints:
- POST /api/v1/conversations - Start a new conversation (sends the welcome message)
- POST /api/v1/conversations/{id}/messages - Send a message, get the replies
- GET /api/v1/conversations/{id} - Is a knowledge base dialog waiting for input?
- DELETE /api/v1/conversations/{id} - Drop any active dialog
"""

import logging
import uuid
from typing import Optional, List

import httpx
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field

from src.conversation.bot import DentalAssistantBot
from src.conversation.context import (
    TurnContext,
    DialogStateStore,
    MemoryDialogStateStore,
    RedisDialogStateStore,
)
from src.core.config import settings
from src.core.models import Activity, ActivityType

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Dependencies ---
_bot: Optional[DentalAssistantBot] = None
_store: Optional[DialogStateStore] = None


async def get_bot() -> DentalAssistantBot:
    """Get or create the bot singleton."""
    global _bot, _store

    if _bot is None:
        redis_store = RedisDialogStateStore(ttl=settings.DIALOG_STATE_TTL)
        try:
            await redis_store.connect(settings.REDIS_URL)
            _store = redis_store
        except Exception as e:
            logger.warning(f"Redis not available, dialog state kept in memory: {e}")
            await redis_store.close()
            _store = MemoryDialogStateStore()

        try:
            _bot = DentalAssistantBot.from_settings(_store)
        except ValueError as e:
            logger.error(f"Failed to configure bot: {e}")
            await _store.close()
            _store = None
            raise HTTPException(status_code=500, detail="Assistant is not configured")

        logger.info("DentalAssistantBot initialized")

    return _bot


async def close_bot():
    global _bot, _store
    if _store is not None:
        await _store.close()
    _bot = None
    _store = None


# --- Request/Response Models ---


class StartConversationRequest(BaseModel):
    user_id: str = Field("anonymous", description="User identifier")


class MessageRequest(BaseModel):
    message: str = Field(..., description="User message", min_length=1)
    user_id: str = Field("anonymous", description="User identifier")


class ConversationResponse(BaseModel):
    conversation_id: str
    dialog_active: bool = False
    activities: List[Activity] = Field(default_factory=list)


# --- Endpoints ---


@router.post("", response_model=ConversationResponse)
async def start_conversation(
    request: StartConversationRequest,
    bot: DentalAssistantBot = Depends(get_bot),
):
    """Start a new conversation and greet the user."""
    conversation_id = str(uuid.uuid4())
    turn = TurnContext(
        conversation_id=conversation_id,
        user_id=request.user_id,
        type=ActivityType.CONVERSATION_UPDATE,
        members_added=[request.user_id],
    )
    activities = await bot.on_turn(turn)
    logger.info(f"Started conversation {conversation_id} for user {request.user_id}")

    return ConversationResponse(conversation_id=conversation_id, activities=activities)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str, bot: DentalAssistantBot = Depends(get_bot)):
    """Get conversation state."""
    return ConversationResponse(
        conversation_id=conversation_id,
        dialog_active=await bot.dialog.is_active(conversation_id),
    )


@router.post("/{conversation_id}/messages", response_model=ConversationResponse)
async def send_message(
    conversation_id: str,
    request: MessageRequest,
    bot: DentalAssistantBot = Depends(get_bot),
):
    """Send a message to the conversation and return the replies."""
    turn = TurnContext(
        conversation_id=conversation_id,
        text=request.message,
        user_id=request.user_id,
        activity_id=str(uuid.uuid4()),
    )

    try:
        activities = await bot.on_turn(turn)
    except httpx.HTTPError as e:
        logger.error(f"Upstream service failed for {conversation_id}: {e}")
        raise HTTPException(status_code=502, detail="Upstream service unavailable")

    return ConversationResponse(
        conversation_id=conversation_id,
        dialog_active=await bot.dialog.is_active(conversation_id),
        activities=activities,
    )


@router.delete("/{conversation_id}")
async def end_conversation(conversation_id: str, bot: DentalAssistantBot = Depends(get_bot)):
    """Drop any active dialog for the conversation."""
    await bot.dialog.end(conversation_id)
    return {"status": "ended", "conversation_id": conversation_id}
