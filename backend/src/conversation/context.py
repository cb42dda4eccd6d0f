"""
Dialog state - Working memory for a knowledge base dialog instance.

Manages:
- The incoming turn (user text + a way to reply)
- The persisted dialog state record (options, follow-up prompts, candidates)
- Storage of that record between turns
"""

import copy
import json
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Callable, Awaitable
from dataclasses import dataclass, field
from enum import IntEnum
from abc import ABC, abstractmethod

import redis.asyncio as redis

from src.core.models import Activity, ActivityType, Answer, DialogOptions

logger = logging.getLogger(__name__)


SendCallback = Callable[[Activity], Awaitable[None]]


@dataclass
class TurnContext:
    """
    One incoming user event.

    Replies go through `send_activity`. When no `send` callback is given
    they are collected in `responses`.
    """
    conversation_id: str
    text: str = ""
    user_id: str = "user"
    activity_id: str = ""
    type: ActivityType = ActivityType.MESSAGE
    recipient_id: str = "bot"
    members_added: List[str] = field(default_factory=list)
    send: Optional[SendCallback] = None
    responses: List[Activity] = field(default_factory=list)

    async def send_activity(self, activity: Activity):
        if self.send is not None:
            await self.send(activity)
        self.responses.append(activity)


class DialogStep(IntEnum):
    """Stages of the knowledge base waterfall."""
    QUERY = 0          # Query the knowledge base, maybe show active learning card
    TRAIN = 1          # Consume an active learning selection
    FOLLOW_UP = 2      # Show follow-up prompts
    DISPLAY = 3        # Show the answer and end


@dataclass
class DialogState:
    """
    Persisted state of one dialog instance.

    previous_qna_id:
        0  no pending follow-up
        >0 id of the answer whose follow-up prompts were shown
        -1 the knowledge base was just queried
    """
    conversation_id: str
    dialog_id: str
    options: DialogOptions = field(default_factory=DialogOptions)
    step: DialogStep = DialogStep.QUERY
    previous_qna_id: int = 0
    prompt_map: Dict[str, int] = field(default_factory=dict)
    current_query: str = ""
    candidates: List[Answer] = field(default_factory=list)

    # Timestamps
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Serialize for storage."""
        return {
            "conversation_id": self.conversation_id,
            "dialog_id": self.dialog_id,
            "options": self.options.model_dump(mode="json"),
            "step": int(self.step),
            "previous_qna_id": self.previous_qna_id,
            "prompt_map": dict(self.prompt_map),
            "current_query": self.current_query,
            "candidates": [a.model_dump(mode="json") for a in self.candidates],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DialogState":
        """Deserialize from storage."""
        return cls(
            conversation_id=data["conversation_id"],
            dialog_id=data["dialog_id"],
            options=DialogOptions.model_validate(data.get("options", {})),
            step=DialogStep(data.get("step", 0)),
            previous_qna_id=data.get("previous_qna_id", 0),
            prompt_map={k: int(v) for k, v in data.get("prompt_map", {}).items()},
            current_query=data.get("current_query", ""),
            candidates=[Answer.model_validate(a) for a in data.get("candidates", [])],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


class DialogStateStore(ABC):
    """Key/value storage for dialog state, partitioned by conversation and dialog."""

    def _key(self, conversation_id: str, dialog_id: str) -> str:
        return f"dialog:{conversation_id}:{dialog_id}"

    @abstractmethod
    async def save(self, state: DialogState):
        pass

    @abstractmethod
    async def load(self, conversation_id: str, dialog_id: str) -> Optional[DialogState]:
        pass

    @abstractmethod
    async def delete(self, conversation_id: str, dialog_id: str):
        pass

    async def close(self):
        pass


class MemoryDialogStateStore(DialogStateStore):
    """In-process store. Keeps serialized copies so callers never share objects."""

    def __init__(self):
        self._data: Dict[str, dict] = {}

    async def save(self, state: DialogState):
        state.updated_at = datetime.now()
        self._data[self._key(state.conversation_id, state.dialog_id)] = copy.deepcopy(
            state.to_dict()
        )

    async def load(self, conversation_id: str, dialog_id: str) -> Optional[DialogState]:
        data = self._data.get(self._key(conversation_id, dialog_id))
        if data is None:
            return None
        return DialogState.from_dict(copy.deepcopy(data))

    async def delete(self, conversation_id: str, dialog_id: str):
        self._data.pop(self._key(conversation_id, dialog_id), None)

    def keys(self) -> List[str]:
        return list(self._data)


class RedisDialogStateStore(DialogStateStore):
    """
    Redis-based storage for dialog state.

    Provides:
    - Save/load dialog state as JSON
    - TTL-based expiration
    """

    def __init__(self, ttl: int = 7200):
        self.redis: Optional[redis.Redis] = None
        self.ttl = ttl

    async def connect(self, redis_url: str = "redis://localhost:6379/0"):
        """Connect to Redis."""
        self.redis = redis.from_url(redis_url, decode_responses=True)
        await self.redis.ping()
        logger.info("DialogStateStore connected to Redis")

    async def close(self):
        """Close Redis connection."""
        if self.redis:
            await self.redis.close()

    def _require(self) -> redis.Redis:
        if not self.redis:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self.redis

    async def save(self, state: DialogState):
        """Save dialog state to Redis."""
        state.updated_at = datetime.now()
        key = self._key(state.conversation_id, state.dialog_id)
        await self._require().setex(key, self.ttl, json.dumps(state.to_dict()))
        logger.debug(f"Saved dialog state {key} at step {state.step.name}")

    async def load(self, conversation_id: str, dialog_id: str) -> Optional[DialogState]:
        """Load dialog state from Redis."""
        data = await self._require().get(self._key(conversation_id, dialog_id))
        if not data:
            return None
        return DialogState.from_dict(json.loads(data))

    async def delete(self, conversation_id: str, dialog_id: str):
        """Delete dialog state."""
        await self._require().delete(self._key(conversation_id, dialog_id))

    async def list_active(self) -> List[Dict[str, Any]]:
        """List active dialog instances with basic metadata."""
        client = self._require()
        dialogs = []
        async for key in client.scan_iter(match="dialog:*"):
            data = await client.get(key)
            if data:
                parsed = json.loads(data)
                dialogs.append({
                    "conversation_id": parsed.get("conversation_id"),
                    "dialog_id": parsed.get("dialog_id"),
                    "step": DialogStep(parsed.get("step", 0)).name.lower(),
                    "updated_at": parsed.get("updated_at"),
                })
        return dialogs
