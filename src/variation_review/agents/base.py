"""
Base class for the model-backed evaluation stages.

Each stage is a `PipelineStage` that builds a prompt from the submitted
document, the outputs of earlier stages and the reference guidance, then asks
the model for one JSON object matching the stage's output schema.
"""

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from ..core.pipeline import PipelineStage
from ..observability.logging import get_logger
from ..observability.tracing import add_span_attributes, trace_span
from ..rag.context import ReferenceContext
from .model_client import GenerativeModelClient
from .schemas import WireModel

logger = get_logger(__name__)

W = TypeVar("W", bound=WireModel)


@dataclass(frozen=True)
class SubmittedDocument:
    """Text of one uploaded submission plus how the report should be written."""

    text: str
    filename: str = "document.pdf"
    locale: str = "en"

    @property
    def is_arabic(self) -> bool:
        return self.locale.lower().startswith("ar")


class StructuredAgent(PipelineStage):
    """Pipeline stage whose output is a validated model response."""

    stage_name: ClassVar[str]
    depends_on: ClassVar[tuple[str, ...]] = ()
    output_schema: ClassVar[type[WireModel]]

    def __init__(self, model_client: GenerativeModelClient):
        super().__init__(self.stage_name, list(self.depends_on))
        self.model_client = model_client

    @abstractmethod
    def system_prompt(self, document: SubmittedDocument) -> str:
        """Get the system prompt for this stage."""
        ...

    @abstractmethod
    def build_prompt(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> str:
        """Build the task prompt from the document and earlier outputs."""
        ...

    def _schema_instructions(self) -> str:
        return (
            "Respond with a single JSON object that conforms to this JSON schema. "
            "Use the exact field names shown; field values may be in any language.\n"
            f"{self.output_schema.json_schema_text()}"
        )

    def prior(self, outputs: Mapping[str, Any], stage: str, schema: type[W]) -> W:
        """Fetch an earlier stage's output, checking its type."""
        try:
            value = outputs[stage]
        except KeyError:
            raise RuntimeError(f"Stage '{self.name}' needs the output of '{stage}'") from None
        if not isinstance(value, schema):
            raise TypeError(
                f"Stage '{self.name}' expected {schema.__name__} from '{stage}', "
                f"got {type(value).__name__}"
            )
        return value

    @trace_span("agent.execute")
    async def execute(
        self,
        document: SubmittedDocument,
        outputs: Mapping[str, Any],
        context: ReferenceContext,
    ) -> WireModel:
        prompt = f"{self.build_prompt(document, outputs, context)}\n\n{self._schema_instructions()}"
        add_span_attributes(stage=self.name, prompt_length=len(prompt))

        logger.info(
            f"Running {self.__class__.__name__}",
            stage=self.name,
            prompt_length=len(prompt),
        )
        return await self.model_client.generate_structured(
            self.output_schema, prompt, self.system_prompt(document)
        )
