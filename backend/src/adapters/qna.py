"""
Knowledge base (QnA Maker) client.

Queries a knowledge base, clusters low-confidence answers for active
learning, and reports user selections back through the train API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional
import math
import re

import httpx
import structlog

from src.adapters.luis import EntityInstance, IntentRecognizerInterface, RecognizerResult
from src.core.models import Answer, FeedbackRecord, QueryOptions, QueryResult

logger = structlog.get_logger()

# Low score variation constants, on the service's 0-100 scale
MAXIMUM_SCORE_FOR_LOW_SCORE_VARIATION = 95.0
MINIMUM_SCORE_FOR_LOW_SCORE_VARIATION = 20.0
PREVIOUS_LOW_SCORE_VARIATION_MULTIPLIER = 0.7
MAX_LOW_SCORE_VARIATION_MULTIPLIER = 1.0


def _include_for_clustering(prev_score: float, current_score: float, multiplier: float) -> bool:
    return (prev_score - current_score) < (multiplier * math.sqrt(prev_score))


def get_low_score_variation(answers: List[Answer]) -> List[Answer]:
    """
    Keep the answers whose scores cluster close to the top answer.

    Answers are expected in ranked order. Each kept answer must be within
    0.7 * sqrt(previous kept score) of the previous one and within
    1.0 * sqrt(top score) of the top one.
    """
    if not answers:
        return []

    if len(answers) == 1:
        return list(answers)

    top_score = answers[0].score * 100
    if top_score > MAXIMUM_SCORE_FOR_LOW_SCORE_VARIATION:
        return [answers[0]]

    filtered: List[Answer] = []
    prev_score = top_score

    if top_score > MINIMUM_SCORE_FOR_LOW_SCORE_VARIATION:
        filtered.append(answers[0])
        for answer in answers[1:]:
            score = answer.score * 100
            if _include_for_clustering(
                prev_score, score, PREVIOUS_LOW_SCORE_VARIATION_MULTIPLIER
            ) and _include_for_clustering(
                top_score, score, MAX_LOW_SCORE_VARIATION_MULTIPLIER
            ):
                prev_score = score
                filtered.append(answer)

    return filtered


def normalize_host(hostname: str) -> str:
    """
    Build the service base URL from a configured hostname.

    v5 hosts (".../qnamaker/v5.0") are used unchanged. Anything else is
    completed to "https://<name>.azurewebsites.net/qnamaker".
    """
    host = hostname.strip()

    if "qnamaker/v5" in host:
        return host

    if re.match(r"^https://.*\.azurewebsites\.net/qnamaker/?", host, re.IGNORECASE):
        return host

    if not re.match(r"https?://", host, re.IGNORECASE):
        host = "https://" + host

    if host.endswith(".azurewebsites.net"):
        return host + "/qnamaker"

    if not host.endswith(".azurewebsites.net/qnamaker"):
        host = host + ".azurewebsites.net/qnamaker"

    return host


@dataclass
class QnAMakerEndpoint:
    """Identity of a knowledge base. All three fields are required."""

    knowledge_base_id: str
    endpoint_key: str
    host: str

    def __post_init__(self):
        if not self.knowledge_base_id:
            raise ValueError("QnAMaker knowledge_base_id is required")
        if not self.endpoint_key:
            raise ValueError("QnAMaker endpoint_key is required")
        if not self.host:
            raise ValueError("QnAMaker host is required")
        self.host = normalize_host(self.host)


class KnowledgeBaseClientInterface(ABC):
    @abstractmethod
    async def query(self, question: str, options: QueryOptions) -> QueryResult:
        """Query the knowledge base for ranked answers."""
        pass

    def low_score_variation(self, answers: List[Answer]) -> List[Answer]:
        """Filter answers down to those close to the top score."""
        return get_low_score_variation(answers)

    @abstractmethod
    async def submit_feedback(self, records: List[FeedbackRecord]) -> bool:
        """Send active learning feedback. Returns True once acknowledged."""
        pass


class QnAMakerClient(KnowledgeBaseClientInterface):
    """
    QnA Maker runtime client over httpx.

    Endpoints:
        POST {host}/knowledgebases/{kbId}/generateAnswer
        POST {host}/knowledgebases/{kbId}/train
    """

    def __init__(
        self,
        endpoint: QnAMakerEndpoint,
        timeout: float = 100.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._http_client = http_client

    def _headers(self) -> dict:
        headers = {
            "Authorization": f"EndpointKey {self.endpoint.endpoint_key}",
            "Content-Type": "application/json",
        }
        if "qnamaker/v5" in self.endpoint.host:
            headers["Ocp-Apim-Subscription-Key"] = self.endpoint.endpoint_key
        return headers

    def _url(self, operation: str) -> str:
        host = self.endpoint.host.rstrip("/")
        return f"{host}/knowledgebases/{self.endpoint.knowledge_base_id}/{operation}"

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        if self._http_client is not None:
            response = await self._http_client.post(url, json=payload, headers=self._headers())
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        response.raise_for_status()
        return response

    async def query(self, question: str, options: QueryOptions) -> QueryResult:
        payload = {
            "question": question,
            "top": options.top,
            "scoreThreshold": options.score_threshold * 100,
            "strictFilters": [m.model_dump() for m in options.strict_filters],
            "strictFiltersCompoundOperationType": options.strict_filters_join_operator.value,
            "rankerType": options.ranker_type.value,
            "isTest": options.is_test,
            "context": options.context.model_dump(by_alias=True),
            "qnaId": options.qna_id,
        }

        logger.info(
            "qna_query_start",
            kb=self.endpoint.knowledge_base_id,
            top=options.top,
            qna_id=options.qna_id,
            previous_qna_id=options.context.previous_qna_id,
        )

        response = await self._post(self._url("generateAnswer"), payload)
        data = response.json()

        answers: List[Answer] = []
        for raw in data.get("answers", []):
            raw = dict(raw)
            raw["score"] = raw.get("score", 0.0) / 100
            answer = Answer.model_validate(raw)
            # The service reports a single id -1 answer when nothing matched
            if answer.id < 0:
                continue
            if answer.score >= options.score_threshold:
                answers.append(answer)

        result = QueryResult(
            answers=answers,
            active_learning_enabled=bool(data.get("activeLearningEnabled", False)),
        )

        logger.info(
            "qna_query_complete",
            answers=len(result.answers),
            top_score=result.answers[0].score if result.answers else None,
            active_learning=result.active_learning_enabled,
        )
        return result

    async def submit_feedback(self, records: List[FeedbackRecord]) -> bool:
        payload = {"feedbackRecords": [r.model_dump(by_alias=True) for r in records]}
        logger.info("qna_train_start", records=len(records))
        await self._post(self._url("train"), payload)
        logger.info("qna_train_complete", records=len(records))
        return True


class KnowledgeBaseFactory:
    @staticmethod
    def create_client(**kwargs) -> KnowledgeBaseClientInterface:
        """
        Factory method to create knowledge base clients.

        Args:
            knowledge_base_id: Optional KB id (defaults to settings)
            endpoint_key: Optional endpoint key (defaults to settings)
            host: Optional hostname (defaults to settings)
            http_client: Optional shared httpx.AsyncClient
        """
        from src.core.config import settings

        endpoint = QnAMakerEndpoint(
            knowledge_base_id=kwargs.get("knowledge_base_id") or settings.QNA_KNOWLEDGE_BASE_ID,
            endpoint_key=kwargs.get("endpoint_key") or settings.QNA_ENDPOINT_KEY,
            host=kwargs.get("host") or settings.QNA_ENDPOINT_HOSTNAME,
        )
        return QnAMakerClient(endpoint, http_client=kwargs.get("http_client"))


class QnARecognizer(IntentRecognizerInterface):
    """
    Uses the knowledge base as an intent recognizer.

    The top answer becomes the `QnAMatch` intent, scored with the answer's
    score. Answers written as "intent=<Name>" name the intent instead.
    No answers (or no text) gives `None` with score 1.
    """

    QNA_MATCH_INTENT = "QnAMatch"
    INTENT_PREFIX = "intent="

    def __init__(self, client: KnowledgeBaseClientInterface, options: Optional[QueryOptions] = None):
        self.client = client
        self.options = options or QueryOptions()

    async def recognize(self, text: str) -> RecognizerResult:
        if not text:
            return RecognizerResult(text=text, top_intent="None", intents={"None": 1.0})

        response = await self.client.query(text, self.options.model_copy(deep=True))
        if not response.answers:
            return RecognizerResult(text=text, top_intent="None", intents={"None": 1.0})

        best = response.answers[0]
        for answer in response.answers[1:]:
            if answer.score > best.score:
                best = answer

        body = best.answer.strip()
        if body.lower().startswith(self.INTENT_PREFIX):
            intent = body[len(self.INTENT_PREFIX):].strip()
        else:
            intent = self.QNA_MATCH_INTENT

        return RecognizerResult(
            text=text,
            top_intent=intent,
            intents={intent: best.score},
            entities={"answer": [best.answer], "answers": list(response.answers)},
            instances={
                "answer": [
                    EntityInstance(
                        type="answer", text=best.answer, length=len(text), score=best.score
                    )
                ]
            },
        )
