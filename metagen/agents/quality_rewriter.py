"""Rewrites the quality guidance layer with newly learned improvements."""

import logging

from pydantic import BaseModel, Field

from metagen.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)


class QualityRewriteInput(BaseModel):
    """Current guidance plus the improvements to integrate."""

    current_quality: str
    improvements: str
    failure_insights: list[str] = Field(default_factory=list)


class QualityRewriteOutput(BaseModel):
    """Full replacement text for the quality guidance layer."""

    content: str = Field(min_length=1)


class QualityGuidelinesRewriterAgent(BaseAgent[QualityRewriteInput, QualityRewriteOutput]):
    """Integrate improvement instructions into the quality guidelines."""

    model_tier = "reasoning"
    temperature = 0.2

    @property
    def system_prompt(self) -> str:
        return """You maintain the quality guidelines section of a meta description generation prompt.

Rules:
1. Keep the existing structure and headings.
2. Integrate the improvements where they belong instead of appending a changelog.
3. Remove guidance that the improvements contradict.
4. Return the complete updated section as markdown, nothing else."""

    @property
    def output_type(self) -> type[QualityRewriteOutput]:
        return QualityRewriteOutput

    def _build_prompt(self, input_data: QualityRewriteInput) -> str:
        logger.info(
            "Building quality rewrite prompt",
            extra={
                "current_length": len(input_data.current_quality),
                "failure_insights": len(input_data.failure_insights),
            },
        )
        instructions = f"IMPROVEMENTS TO MAKE:\n{input_data.improvements}"
        if input_data.failure_insights:
            insights = "\n".join(f"- {item}" for item in input_data.failure_insights)
            instructions += (
                "\n\nFAILURE INSIGHTS (the generator struggles with these, address them):\n"
                f"{insights}"
            )

        return (
            "Update these meta description quality guidelines with the improvements below.\n\n"
            "CURRENT GUIDELINES:\n"
            f"{input_data.current_quality}\n\n"
            f"{instructions}\n\n"
            "Return the updated guidelines. Keep the structure, just integrate the improvements."
        )
