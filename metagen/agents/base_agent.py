"""Shared plumbing for the writer, scorer, analyst and rewriter agents."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Generic, TypeVar, cast

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from metagen.config import settings

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """One structured LLM call: build a prompt from ``InputT``, get back ``OutputT``.

    Output that fails ``output_type`` validation is retried by pydantic-ai up to
    ``max_retries`` times before the call raises.
    """

    # "reasoning" for the learner's agents, "standard" for per-page calls
    model_tier: str = "standard"
    model: str | None = None
    temperature: float = 0.7
    max_retries: int = settings.llm_max_retries

    def __init__(self, model_override: str | None = None) -> None:
        self._model = model_override or self.model or settings.get_model(self.model_tier)
        self._agent: Agent[None, OutputT] | None = None
        logger.debug(
            "Agent configured",
            extra={
                "agent": type(self).__name__,
                "model": self._model,
                "tier": self.model_tier,
                "temperature": self.temperature,
            },
        )

    @property
    def agent(self) -> Agent[None, OutputT]:
        if self._agent is None:
            self._agent = cast(
                Agent[None, OutputT],
                Agent(
                    model=self._model,
                    output_type=self.output_type,
                    system_prompt=self.system_prompt,
                    retries=self.max_retries,
                    model_settings=ModelSettings(
                        temperature=self.temperature,
                        timeout=settings.get_llm_timeout(self.model_tier),
                    ),
                ),
            )
        return self._agent

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        pass

    @property
    @abstractmethod
    def output_type(self) -> type[OutputT]:
        pass

    async def run(self, input_data: InputT) -> OutputT:
        agent_name = type(self).__name__
        prompt = self._build_prompt(input_data)

        started = time.perf_counter()
        result = await self.agent.run(prompt)
        usage = result.usage()
        logger.info(
            "Agent call finished",
            extra={
                "agent": agent_name,
                "model": self._model,
                "prompt_chars": len(prompt),
                "duration_s": round(time.perf_counter() - started, 2),
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        )
        return result.output

    @abstractmethod
    def _build_prompt(self, input_data: InputT) -> str:
        """User prompt for one call; the system prompt is fixed per instance."""
