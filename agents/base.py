"""Model construction shared by the extractor and synthesizer agents.

Supports:
    - Remote models in PydanticAI format: 'google-gla:gemini-2.0-flash'
    - Local OpenAI-compatible servers: 'openai:{model_name}@http://127.0.0.1:8080/v1'
    - Pre-built PydanticAI Model instances (passed through unchanged)
"""

import logging

from openai import AsyncOpenAI
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)


def parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[7:]  # Remove "openai:" prefix
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def create_model(model: str | Model) -> str | Model:
    """Create the appropriate PydanticAI model for a model identifier.

    Args:
        model: Model identifier string or an existing Model instance

    Returns:
        PydanticAI model instance or model string
    """
    if not isinstance(model, str):
        return model

    parsed = parse_local_model(model)
    if parsed:
        model_name, base_url = parsed
        logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
        # Local servers don't need authentication - use placeholder
        client = AsyncOpenAI(base_url=base_url, api_key="local-model")
        profile = OpenAIModelProfile(supports_json_object_output=False)
        return OpenAIChatModel(
            model_name,
            provider=OpenAIProvider(openai_client=client),
            profile=profile,
        )
    return model


def model_label(model: str | Model) -> str:
    """Human-readable model name for logs and provenance."""
    if isinstance(model, str):
        return model
    return getattr(model, "model_name", type(model).__name__)
