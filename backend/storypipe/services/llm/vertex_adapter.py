"""Vertex AI adapter for the LLM abstraction layer.

Uses the google-genai SDK with response_schema so Gemini returns JSON shaped
like the requested pydantic model. Empty or blocked responses are raised as
ValueError with the finish reason, which the pipeline treats as terminal.
"""

import logging
from typing import Optional, Type

from google.genai import types as genai_types
from pydantic import BaseModel
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storypipe.services.llm.base import LLMAdapter
from storypipe.services.vertex_client import get_vertex_client, location_for_model

logger = logging.getLogger(__name__)

# Large enough for a detailed animated SVG
DEFAULT_MAX_OUTPUT_TOKENS = 16384


def _finish_reason(response) -> Optional[str]:
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    return getattr(reason, "name", None) or (str(reason) if reason is not None else None)


def _block_reason(response) -> str:
    """Best-effort explanation for a response without text."""
    reason = _finish_reason(response)
    if reason:
        return f"finish_reason={reason}"
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None:
        return f"prompt_feedback={feedback}"
    return "unknown"


class VertexAIAdapter(LLMAdapter):
    """LLM adapter backed by Gemini on Vertex AI."""

    def __init__(self, model_id: str, max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS) -> None:
        super().__init__(model_id)
        self._location = location_for_model(model_id)
        self._max_output_tokens = max_output_tokens

    def _config(
        self,
        schema: Type[BaseModel],
        temperature: float,
        system_prompt: Optional[str],
    ) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=self._max_output_tokens,
            response_mime_type="application/json",
            response_schema=schema,
            system_instruction=system_prompt,
        )

    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        config = self._config(schema, temperature, system_prompt)

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _call() -> BaseModel:
            client = get_vertex_client(location=self._location)
            response = await client.aio.models.generate_content(
                model=self.model_id,
                contents=prompt,
                config=config,
            )

            if not response.text:
                raise ValueError(
                    f"{self.model_id} returned an empty response ({_block_reason(response)})"
                )

            reason = _finish_reason(response)
            if reason and reason != "STOP":
                logger.warning(
                    f"{self.model_id} stopped with {reason}; "
                    f"{schema.__name__} output may be truncated ({len(response.text)} chars)"
                )

            return schema.model_validate_json(response.text)

        return await _call()
