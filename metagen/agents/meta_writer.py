"""Meta title/description writer agent."""

import logging

from pydantic import BaseModel, Field

from metagen.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

CONTENT_PREVIEW_CHARS = 500


class RejectedAttempt(BaseModel):
    """An earlier attempt for the same page and why it was rejected."""

    attempt: int
    title: str = ""
    description: str = ""
    reason: str


class MetaWriterInput(BaseModel):
    """Input for the meta writer agent."""

    url: str
    ctr: float = Field(ge=0, description="Current click-through rate (0-1)")
    impressions: int = Field(ge=0)
    current_title: str | None = None
    current_description: str | None = None
    content: str | None = None
    previous_failures: list[str] = Field(default_factory=list)
    rejected_attempts: list[RejectedAttempt] = Field(default_factory=list)


class GeneratedText(BaseModel):
    """Generated SERP snippet."""

    title: str = Field(description="Page title, 50-60 characters")
    description: str = Field(description="Meta description, 140-160 characters")


class MetaWriterAgent(BaseAgent[MetaWriterInput, GeneratedText]):
    """Write a title and meta description aimed at a higher SERP click-through rate.

    The system prompt is the rendered prompt state (base constraints, quality
    guidance, learned patterns), so one instance is built per generation batch.
    """

    model_tier = "standard"
    temperature = 0.7

    def __init__(self, system_prompt: str, model_override: str | None = None) -> None:
        self._system_prompt = system_prompt
        super().__init__(model_override=model_override)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def output_type(self) -> type[GeneratedText]:
        return GeneratedText

    def _build_prompt(self, input_data: MetaWriterInput) -> str:
        logger.info(
            "Building meta writer prompt",
            extra={
                "url": input_data.url,
                "has_content": bool(input_data.content),
                "rejected_attempts": len(input_data.rejected_attempts),
            },
        )
        lines = [
            "Generate an optimized meta description for this page:",
            "",
            f"URL: {input_data.url}",
            f"Current Title: {input_data.current_title or 'Unknown'}",
            f"Current Description: {input_data.current_description or 'None'}",
            f"Current CTR: {input_data.ctr * 100:.1f}%",
            f"Monthly Impressions: {input_data.impressions:,}",
        ]

        if input_data.content:
            lines.extend([
                "",
                "Page Content:",
                f"{input_data.content[:CONTENT_PREVIEW_CHARS]}...",
            ])

        if input_data.previous_failures:
            lines.extend(["", "Earlier runs could not produce an accepted description. Reasons:"])
            lines.extend(f"- {reason}" for reason in input_data.previous_failures)

        if input_data.rejected_attempts:
            lines.extend([
                "",
                "## Previous generation attempts (all rejected)",
                "",
            ])
            for rejected in input_data.rejected_attempts:
                lines.extend([
                    f"Attempt {rejected.attempt}:",
                    f"  Title: {rejected.title}",
                    f"  Description: {rejected.description}",
                    f"  Rejected because: {rejected.reason}",
                ])
            lines.extend([
                "",
                "Do not repeat any of these mistakes. Write something fundamentally "
                "different, not a minor edit of a rejected attempt.",
            ])

        lines.extend(["", "Generate a new title and description that will improve CTR."])
        return "\n".join(lines)
