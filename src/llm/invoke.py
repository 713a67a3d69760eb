"""
Model invocation gateway.

Every pipeline step calls the model through invoke_and_validate(): it sends
the prompt, extracts JSON from the raw text, validates it against a Pydantic
model, and on failure retries with a correction appended to the user message
listing what was wrong. LLM client errors are never retried here; transport
retries live inside the client.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from src.core.exceptions import AgentOutputInvalidError
from src.llm.client import LLMClient
from src.llm.json_extraction import JSONExtractionError, extract_json

log = structlog.get_logger(__name__)

DEFAULT_MAX_RETRIES = 1

CORRECTION_HEADER = (
    "[CORRECTION] Your previous response had validation errors. "
    "Please fix these issues and respond with valid JSON:"
)

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class LLMRequest:
    """Prompt for one model call."""

    system_prompt: str
    user_message: str
    output_schema: Optional[Dict[str, Any]] = None


def format_validation_errors(error: ValidationError) -> List[str]:
    """Render Pydantic errors as "path: message" lines."""
    lines = []
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        lines.append(f"{path}: {item.get('msg', 'invalid value')}")
    return lines


def with_correction(request: LLMRequest, errors: List[str]) -> LLMRequest:
    """Copy of ``request`` whose user message carries the correction block."""
    bullet_list = "\n".join(f"- {e}" for e in errors)
    return replace(
        request,
        user_message=f"{request.user_message}\n\n{CORRECTION_HEADER}\n{bullet_list}",
    )


async def invoke_and_validate(
    llm_client: LLMClient,
    request: LLMRequest,
    schema: Type[T],
    agent_name: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> T:
    """
    Call the model and return its output validated against ``schema``.

    Args:
        llm_client: Injected LLM client
        request: System prompt, user message and optional output schema hint
        schema: Pydantic model the JSON must validate against
        agent_name: Step name used in logs and errors
        max_retries: Correction retries after the first attempt

    Returns:
        Validated ``schema`` instance

    Raises:
        AgentOutputInvalidError: No valid output after max_retries + 1 attempts
        LLMError: Propagated from the client without retry
    """
    attempts = max_retries + 1
    last_errors: List[str] = []
    current = request

    for attempt in range(attempts):
        if attempt > 0:
            current = with_correction(request, last_errors)

        response = await llm_client.complete(
            current.user_message,
            system=current.system_prompt,
            response_schema=current.output_schema,
        )

        try:
            parsed = extract_json(response.content)
        except JSONExtractionError as e:
            last_errors = [f"Failed to parse JSON: {e}"]
            log.warning(
                "llm_output_parse_failed",
                agent_name=agent_name,
                attempt=attempt + 1,
                max_attempts=attempts,
                errors=last_errors,
            )
            continue

        try:
            return schema.model_validate(parsed)
        except ValidationError as e:
            last_errors = format_validation_errors(e)
            log.warning(
                "llm_output_validation_failed",
                agent_name=agent_name,
                attempt=attempt + 1,
                max_attempts=attempts,
                errors=last_errors,
            )

    log.error(
        "llm_output_invalid",
        agent_name=agent_name,
        attempts=attempts,
        errors=last_errors,
    )
    raise AgentOutputInvalidError(agent_name, attempts, last_errors)
