"""LLM quality scorer for generated meta descriptions."""

import logging

from pydantic import BaseModel, Field

from metagen.agents.base_agent import BaseAgent

logger = logging.getLogger(__name__)

BANNED_PHRASES: tuple[str, ...] = (
    "discover",
    "unlock",
    "comprehensive",
    "ultimate",
    "transform",
    "elevate",
    "streamline",
    "take your X to the next level",
    "start today!",
)


class QualityScorerInput(BaseModel):
    """Input payload for quality scoring."""

    url: str
    current_title: str | None = None
    content: str | None = None
    title: str
    description: str


class QualityScore(BaseModel):
    """Rubric score for one generated snippet."""

    score: float = Field(ge=1, le=10, description="CTR potential, 1-10")
    feedback: str


class MetaQualityScorerAgent(BaseAgent[QualityScorerInput, QualityScore]):
    """Score a generated description 1-10 for click-through potential."""

    model_tier = "standard"
    temperature = 0.0

    @property
    def system_prompt(self) -> str:
        banned = ", ".join(f'"{phrase}"' for phrase in BANNED_PHRASES)
        return f"""Score this meta description 1-10 for click-through rate potential on a Google SERP.

Scoring rubric:
- 9-10: Contains a specific number or concrete claim from the page, differentiates from generic competitors, front-loads the hook, no wasted words.
- 7-8: Specific and relevant, but could be tighter. Minor issues like a weak closing or slightly generic phrasing.
- 5-6: Technically accurate but reads like any competitor could say it. Lacks a specific differentiator.
- 3-4: Generic marketing copy. Uses filler phrases. Could describe any product.
- 1-2: Wrong intent, factually inaccurate, or pure fluff with no information content.

Auto-deduct 2 points for any of: {banned}, or repeating the title in the description.

Return the score and one or two sentences of feedback."""

    @property
    def output_type(self) -> type[QualityScore]:
        return QualityScore

    def _build_prompt(self, input_data: QualityScorerInput) -> str:
        parts = [f"Page: {input_data.url}"]
        if input_data.current_title:
            parts.append(f"Current Title: {input_data.current_title}")
        if input_data.content:
            parts.append(f"Page Content:\n{input_data.content[:500]}")
        parts.append("")
        parts.append(f"Generated Title: {input_data.title}")
        parts.append(f"Generated Description: {input_data.description}")
        return "\n".join(parts)
