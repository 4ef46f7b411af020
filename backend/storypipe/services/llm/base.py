"""Abstract base class for LLM provider adapters.

Both pipeline stages talk to models through this interface: decomposition asks
for a StoryboardOutput, scene generation asks for an AnimationOutput. Adapters
return a validated instance of whichever schema the caller passes in.
"""

from abc import ABC, abstractmethod
from typing import Optional, Type

from pydantic import BaseModel


class LLMAdapter(ABC):
    """Structured-output text generation against one model.

    Attributes:
        model_id: Provider id the adapter was created for, e.g.
            "gemini-2.5-flash" or "ollama/llama3.1".
    """

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model_id={self.model_id!r})"

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        schema: Type[BaseModel],
        *,
        temperature: float = 0.7,
        system_prompt: Optional[str] = None,
        max_retries: int = 3,
    ) -> BaseModel:
        """Generate one structured response.

        Args:
            prompt: User prompt (movie concept or scene animation prompt).
            schema: Pydantic model class the response must validate against.
            temperature: Sampling temperature (0.0-1.0).
            system_prompt: Optional system/instruction prompt.
            max_retries: Total attempts made by the adapter itself. The
                pipeline owns its retry policy and always passes 1.

        Returns:
            Validated instance of `schema`.

        Raises:
            pydantic.ValidationError: If the model output does not match `schema`.
        """
        ...
