"""Per-turn pipeline accumulator.

PipelineState is immutable. The orchestrator folds each stage's partial
update into a new state with merge(); a stage may only write its own output
field, and only once per turn.
"""

from typing import Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

from src.domain.models.agent import (
    AgentInput,
    ClassifierOutput,
    ContextOutput,
    GapReasoningOutput,
    PersonaOutput,
    StructuringOutput,
)
from src.domain.models.turn import TurnContext


class PipelineState(BaseModel):
    """Everything computed so far for one turn."""

    model_config = ConfigDict(frozen=True)

    OUTPUT_FIELDS: ClassVar[FrozenSet[str]] = frozenset(
        {
            "classifier_output",
            "context_output",
            "gap_reasoning_output",
            "persona_output",
            "structuring_output",
        }
    )

    session_id: str
    input: AgentInput
    classifier_output: Optional[ClassifierOutput] = None
    context_output: Optional[ContextOutput] = None
    gap_reasoning_output: Optional[GapReasoningOutput] = None
    persona_output: Optional[PersonaOutput] = None
    structuring_output: Optional[StructuringOutput] = None

    # Carried in from the session
    active_category: Optional[str] = None
    turn_context: Optional[TurnContext] = None

    def merge(self, update: Dict[str, Any]) -> "PipelineState":
        """Return a new state with ``update`` folded in.

        Raises:
            RuntimeError: If the update touches a non-output field or an
                output that was already written this turn
        """
        for key, value in update.items():
            if key not in self.OUTPUT_FIELDS:
                raise RuntimeError(
                    f"Pipeline contract violation: '{key}' is not a stage output field"
                )
            if getattr(self, key) is not None:
                raise RuntimeError(
                    f"Pipeline contract violation: '{key}' was already written this turn"
                )
            if value is None:
                raise RuntimeError(
                    f"Pipeline contract violation: '{key}' update is empty"
                )
        return self.model_copy(update=update)

    @property
    def intent(self) -> Optional[str]:
        if self.classifier_output is None:
            return None
        return self.classifier_output.result.intent
