"""Scripted collaborators for tests."""

import json
from typing import Any, Dict, List, Optional, Union

from src.llm.client import LLMClient, LLMResponse

Reply = Union[str, Dict[str, Any], Exception]

# System-prompt markers, checked in order (the greeting prompt also mentions
# the persona, so it is matched first).
AGENT_MARKERS = [
    ("classifier", "classifier agent"),
    ("gap", "gap-reasoning agent"),
    ("greeting", "starting a new conversation"),
    ("structuring", "structuring agent"),
    ("persona", "your persona"),
]


def _as_response(reply: Reply) -> LLMResponse:
    if isinstance(reply, Exception):
        raise reply
    content = reply if isinstance(reply, str) else json.dumps(reply)
    return LLMResponse(content=content, model="scripted")


class ScriptedLLMClient(LLMClient):
    """Returns queued replies in order and records every call."""

    provider_name = "scripted"
    model = "scripted"

    def __init__(self, replies: Optional[List[Reply]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        self.calls.append({"prompt": prompt, "system": system, "schema": response_schema})
        if not self.replies:
            raise AssertionError("ScriptedLLMClient ran out of replies")
        return _as_response(self.replies.pop(0))


class RoutedLLMClient(LLMClient):
    """Answers each agent from its own reply queue.

    The agent is recognized from its system prompt. A queue with one reply
    left keeps returning it.
    """

    provider_name = "routed"
    model = "routed"

    def __init__(self, **routes: List[Reply]):
        self.routes = {agent: list(replies) for agent, replies in routes.items()}
        self.calls: List[Dict[str, Any]] = []

    @staticmethod
    def agent_for(system: str) -> str:
        lowered = system.lower()
        for agent, marker in AGENT_MARKERS:
            if marker in lowered:
                return agent
        raise AssertionError(f"Unrecognized system prompt: {system[:80]}")

    def calls_for(self, agent: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["agent"] == agent]

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        agent = self.agent_for(system or "")
        self.calls.append({"agent": agent, "prompt": prompt, "system": system})

        queue = self.routes.get(agent)
        if not queue:
            raise AssertionError(f"No scripted reply for agent '{agent}'")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return _as_response(reply)


class StaticEmbeddingClient:
    """Embeds every text to the same vector and remembers the texts."""

    def __init__(self, vector: List[float]):
        self.vector = vector
        self.texts: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        return self.vector


class FailingEmbeddingClient:
    async def embed(self, text: str) -> List[float]:
        raise RuntimeError("embedding service unavailable")


def classification(
    category_id: str = "history",
    intent: str = "content",
    is_topic_change: bool = False,
    confidence: float = 0.9,
    **extra: Any,
) -> Dict[str, Any]:
    return {
        "category_id": category_id,
        "intent": intent,
        "is_topic_change": is_topic_change,
        "confidence": confidence,
        "reasoning": "scripted",
        **extra,
    }


def gaps(*fields: str, questions: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "gaps": [
            {"field": f, "description": f"{f} is missing", "priority": "high"} for f in fields
        ],
        "follow_up_questions": questions
        if questions is not None
        else [f"What about the {f}?" for f in fields],
        "reasoning": "scripted",
    }


def persona(response: str = "Thanks for sharing!", questions: Optional[List[str]] = None):
    return {"response": response, "follow_up_questions": questions or []}


def structured(
    structured_data: Optional[Dict[str, Any]] = None,
    is_complete: bool = False,
    title: str = "Village church",
    content: str = "The old church was built in 1732.",
    **extra: Any,
) -> Dict[str, Any]:
    return {
        "title": title,
        "content": content,
        "structured_data": structured_data or {},
        "tags": ["church"],
        "is_complete": is_complete,
        "missing_fields": [],
        **extra,
    }


def classifier_output(**kwargs: Any):
    """ClassifierOutput built from the same fields as classification()."""
    from src.domain.models.agent import ClassifierOutput, ClassifierResult

    result = ClassifierResult(**classification(**kwargs))
    return ClassifierOutput(result=result, confidence=result.confidence)
