"""Ollama adapter for the LLM abstraction layer.

Talks to a local or cloud Ollama server through ollama.AsyncClient. Structured
output uses format="json" plus a schema description appended to the system
prompt: Ollama Cloud does not reliably honour a full JSON schema passed as the
format, and the animation schema's long SVG string field is where models drift
most.
"""

import json
import logging
from typing import Optional, Type

from ollama import AsyncClient
from pydantic import BaseModel
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storypipe.services.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


def _schema_instruction(schema: Type[BaseModel]) -> str:
    """Schema description appended to the system prompt."""
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    return (
        "\n\nRespond with exactly one JSON object and nothing else: no markdown, "
        "no commentary, no code fences. It must match this JSON schema:\n"
        f"{schema_json}\n"
        "String fields are plain strings, never arrays. Markup such as SVG goes "
        "inside a string with quotes escaped."
    )


def _strip_code_fence(raw: str) -> str:
    """Unwrap ```json ... ``` that some models put around their JSON."""
    stripped = raw.strip()
    if not stripped.startswith("```"):
        return raw
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return raw
    body = stripped[first_newline + 1:]
    if body.endswith("```"):
        body = body[:-3].rstrip()
    return body


class OllamaAdapter(LLMAdapter):
    """LLM adapter backed by an Ollama server.

    The "ollama/" prefix of the provider id is dropped before calling the
    server; responses are always requested with stream=False.
    """

    def __init__(
        self,
        model_id: str,
        base_url: str = "http://localhost:11434",
        api_key: Optional[str] = None,
    ) -> None:
        super().__init__(model_id)
        self._ollama_model = model_id.removeprefix("ollama/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = AsyncClient(host=base_url, headers=headers)

    def _messages(self, prompt: str, schema: Type[BaseModel], system_prompt: Optional[str]) -> list[dict]:
        system = (system_prompt or "") + _schema_instruction(schema)
        return [
            {"role": "system", "content": system.lstrip()},
            {"role": "user", "content": prompt},
        ]

    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        messages = self._messages(prompt, schema, system_prompt)

        @retry(
            stop=stop_after_attempt(max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _call() -> BaseModel:
            response = await self._client.chat(
                model=self._ollama_model,
                messages=messages,
                format="json",
                options={"temperature": temperature},
                stream=False,
            )
            content = response.message.content or ""
            if not content.strip():
                raise ValueError(f"{self.model_id} returned an empty response")
            return schema.model_validate_json(_strip_code_fence(content))

        return await _call()
