"""Text completion boundary.

The routing core never talks to an LLM directly. Components that need one
(``IntentClassifier``, ``NextBestActionAgent``) depend on the small
``TextCompletion`` protocol. ``PydanticAITextCompletion`` implements it with a
Pydantic AI ``Agent`` producing plain string output; tests pass
``pydantic_ai.models.test.TestModel`` or any object with a matching
``complete`` coroutine.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic_ai import Agent

logger = logging.getLogger(__name__)


@runtime_checkable
class TextCompletion(Protocol):
    async def complete(self, prompt: str, *, max_tokens: int = 256, temperature: float = 0.0) -> str: ...


class PydanticAITextCompletion:
    """
    ``TextCompletion`` backed by a Pydantic AI agent.

    Args:
        model: A Pydantic AI model instance or model name (e.g. ``"openai:gpt-4o"``).
        system_prompt: Optional system prompt applied to every completion.
    """

    def __init__(self, model: Any, *, system_prompt: Optional[str] = None) -> None:
        kwargs: Dict[str, Any] = {"output_type": str}
        if system_prompt:
            kwargs["system_prompt"] = system_prompt
        self._agent: Agent[None, str] = Agent(model, **kwargs)

    async def complete(self, prompt: str, *, max_tokens: int = 256, temperature: float = 0.0) -> str:
        result = await self._agent.run(
            prompt,
            model_settings={"temperature": temperature, "max_tokens": max_tokens},
        )
        # Prompt text is never logged; only its size.
        logger.debug("Completion finished; prompt_chars=%d output_chars=%d", len(prompt), len(result.output))
        return result.output
