import logging
import os
from abc import ABC, abstractmethod

import google.generativeai as genai

from lessonloop.errors import UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "gemini-2.5-flash"


class LLMProvider(ABC):
    """
    Abstract base class for a generic LLM provider.
    This defines the interface that all concrete providers must implement.
    """

    @abstractmethod
    def generate(self, prompt_parts: list, json_mode: bool = False) -> str:
        """
        Generates text from a list of prompt parts.

        Args:
            prompt_parts (list): A list of prompt strings.
            json_mode (bool): Whether to ask the model for JSON output.

        Returns:
            str: The generated text from the language model.

        Raises:
            UpstreamFailure: The model could not be reached or returned an error.
        """
        pass


class GeminiProvider(LLMProvider):
    """
    Concrete implementation of the LLMProvider for Google's Gemini models.
    """

    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL_NAME):
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.model = genai.GenerativeModel(model_name)

    def generate(self, prompt_parts: list, json_mode: bool = False) -> str:
        generation_config = {}
        if json_mode:
            generation_config = {"response_mime_type": "application/json"}
        try:
            response = self.model.generate_content(prompt_parts, generation_config=generation_config)
            return response.text
        except Exception as e:
            logger.error("Gemini request failed (%s): %s", self.model_name, e)
            raise UpstreamFailure(f"Failed to generate MCQs: {e}") from e


# A factory function to get the correct provider based on configuration
def get_provider(config):
    """
    Factory function to instantiate the configured LLM provider.

    The API key is read from the GEMINI_API_KEY environment variable, never
    from config.yaml.
    """
    llm_config = config.get("llm", {})
    provider_name = llm_config.get("provider", "mock")

    if provider_name == "gemini":
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not set in the environment for Gemini provider.")
        return GeminiProvider(api_key=api_key, model_name=llm_config.get("model_name", DEFAULT_MODEL_NAME))
    raise ValueError(f"Unsupported LLM provider: {provider_name}")
