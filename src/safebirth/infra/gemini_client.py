"""Gemini model factory for the conversational fallback agents."""

import google.generativeai as genai

from safebirth.app.config import get_settings


def is_configured() -> bool:
    """True when an API key is present; without one every agent call short-circuits."""
    return bool(get_settings().gemini_api_key)


def get_model(
    model_name: str | None = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    system_instruction: str | None = None,
    max_output_tokens: int | None = None,
):
    """Return a configured Gemini GenerativeModel instance.

    Args:
        model_name: Gemini model identifier (defaults to ``settings.gemini_model``).
        temperature: Generation temperature (0.0-2.0).
        json_mode: If True, constrain output to valid JSON.
        system_instruction: Optional system-level instruction.
        max_output_tokens: Optional cap on reply length.

    Returns:
        A ``google.generativeai.GenerativeModel`` ready for generation.
    """
    settings = get_settings()
    genai.configure(api_key=settings.gemini_api_key)

    generation_config = {"temperature": temperature}
    if json_mode:
        generation_config["response_mime_type"] = "application/json"
    if max_output_tokens:
        generation_config["max_output_tokens"] = max_output_tokens

    return genai.GenerativeModel(
        model_name=model_name or settings.gemini_model,
        generation_config=generation_config,
        system_instruction=system_instruction,
    )
