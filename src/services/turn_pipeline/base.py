"""
Base stage class for the turn processing pipeline.

All pipeline stages inherit from TurnStage.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Dict

from src.core.exceptions import AgentPreconditionError

if TYPE_CHECKING:
    from src.domain.models.agent import ClassifierOutput
    from src.domain.models.pipeline_state import PipelineState


class TurnStage(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage reads the accumulated PipelineState and returns a partial
    update containing only its own output field. The pipeline folds the
    update into a new state; stages never mutate the state they receive.
    """

    output_field: ClassVar[str]

    @abstractmethod
    async def process(self, state: "PipelineState") -> Dict[str, Any]:
        """
        Run this stage.

        Args:
            state: Read-only view of everything computed so far this turn

        Returns:
            ``{self.output_field: <output model>}``
        """
        pass

    @property
    def stage_name(self) -> str:
        """Return the stage name for logging."""
        return self.__class__.__name__

    def require_classification(self, state: "PipelineState") -> "ClassifierOutput":
        """Classifier output, or a precondition failure if it has not run."""
        if state.classifier_output is None or not state.classifier_output.result.category_id:
            raise AgentPreconditionError(
                f"{self.stage_name} requires classifier output with a category_id"
            )
        return state.classifier_output
