"""TextGenerator capability backed by ``google-generativeai``."""

from typing import Optional

import google.generativeai as genai

from ..core.capabilities import TextGenerator
from ..core.exceptions import GenerationError, GenerationNotConfigured
from ..core.logging import get_logger

logger = get_logger(__name__)


def build_prompt(prompt: str, system_prompt: Optional[str] = None) -> str:
    """Prefix the user prompt with the system prompt, when one is given."""
    if system_prompt:
        return f"{system_prompt}\n\nUser Input:\n{prompt}"
    return prompt


class GeminiTextGenerator(TextGenerator):
    """Generates text with Gemini models.

    Without an API key every call raises ``GenerationNotConfigured`` so the
    ai_action handler can fall back to simulation.
    """

    engine_name = "Gemini"

    def __init__(self, api_key: Optional[str] = None, timeout: float = 60.0):
        self.api_key = api_key
        self.timeout = timeout
        if api_key:
            genai.configure(api_key=api_key)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(self, model: str, prompt: str, system_prompt: Optional[str] = None) -> str:
        if not self.is_configured:
            raise GenerationNotConfigured("GEMINI_API_KEY is not set", model=model)

        try:
            model_instance = genai.GenerativeModel(model)
            response = model_instance.generate_content(
                build_prompt(prompt, system_prompt),
                request_options={"timeout": self.timeout}
            )
            text = response.text
        except Exception as e:
            logger.error(f"Gemini generation failed for model {model}: {str(e)}")
            raise GenerationError(f"Gemini generation failed: {str(e)}", model=model) from e

        logger.debug(f"Gemini generated {len(text)} characters with {model}")
        return text
