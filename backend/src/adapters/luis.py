"""
Intent recognition (LUIS v3 prediction API).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
import re

import httpx
import structlog

logger = structlog.get_logger()


@dataclass
class EntityInstance:
    """Where an entity was found in the utterance."""
    type: str
    text: str
    start_index: int = 0
    length: int = 0
    score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "EntityInstance":
        return cls(
            type=data.get("type", ""),
            text=data.get("text", ""),
            start_index=data.get("startIndex", 0),
            length=data.get("length", 0),
            score=data.get("score"),
        )


@dataclass
class RecognizerResult:
    """Ranked intents and extracted entities for one utterance."""
    text: str
    top_intent: str = "None"
    intents: Dict[str, float] = field(default_factory=dict)
    entities: Dict[str, Any] = field(default_factory=dict)
    # None when the service returned no instance metadata at all
    instances: Optional[Dict[str, List[EntityInstance]]] = None

    def score(self, intent: str) -> float:
        return self.intents.get(intent, 0.0)

    def first_instance(self, entity: str) -> Optional[EntityInstance]:
        if not self.instances:
            return None
        found = self.instances.get(entity) or []
        return found[0] if found else None

    @classmethod
    def from_prediction(cls, text: str, data: dict) -> "RecognizerResult":
        prediction = data.get("prediction", {})
        raw_entities = dict(prediction.get("entities", {}))
        raw_instances = raw_entities.pop("$instance", None)

        instances = None
        if raw_instances is not None:
            instances = {
                name: [EntityInstance.from_dict(i) for i in items]
                for name, items in raw_instances.items()
            }

        return cls(
            text=text,
            top_intent=prediction.get("topIntent", "None"),
            intents={
                name: float(value.get("score", 0.0))
                for name, value in prediction.get("intents", {}).items()
            },
            entities=raw_entities,
            instances=instances,
        )


class IntentRecognizerInterface(ABC):
    @abstractmethod
    async def recognize(self, text: str) -> RecognizerResult:
        """Return ranked intents and entities for the text."""
        pass


class IntentRecognizer(IntentRecognizerInterface):
    """
    LUIS prediction client.

    GET https://{host}/luis/prediction/v3.0/apps/{appId}/slots/{slot}/predict
    """

    def __init__(
        self,
        app_id: str,
        api_key: str,
        hostname: str,
        slot: str = "production",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not app_id or not api_key or not hostname:
            raise ValueError("LUIS app id, api key and hostname are required")

        self.app_id = app_id
        self.api_key = api_key
        self.slot = slot
        self.timeout = timeout
        self._http_client = http_client

        host = hostname.rstrip("/")
        if not re.match(r"https?://", host, re.IGNORECASE):
            host = "https://" + host
        self.base_url = host

    def _url(self) -> str:
        return (
            f"{self.base_url}/luis/prediction/v3.0/apps/{self.app_id}"
            f"/slots/{self.slot}/predict"
        )

    async def recognize(self, text: str) -> RecognizerResult:
        params = {
            "subscription-key": self.api_key,
            "query": text,
            "verbose": "true",
            "show-all-intents": "true",
        }

        if self._http_client is not None:
            response = await self._http_client.get(self._url(), params=params)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self._url(), params=params)
        response.raise_for_status()

        result = RecognizerResult.from_prediction(text, response.json())
        logger.info(
            "luis_prediction",
            top_intent=result.top_intent,
            score=result.score(result.top_intent),
            entities=list(result.instances or {}),
        )
        return result
