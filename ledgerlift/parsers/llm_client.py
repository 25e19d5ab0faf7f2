"""Reusable LLM client for statement parsing with structured output."""

import asyncio
import base64
import json
import logging
from typing import Any, Optional, Type, TypeVar

from litellm import acompletion
from pydantic import BaseModel, ValidationError

from ledgerlift.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ParsingError(Exception):
    """Raised when LLM-based parsing fails."""

    pass


def _get_model_name(vision: bool = False) -> str:
    """Get the appropriate model name based on provider."""
    if settings.llm_provider == "openai":
        return settings.openai_model
    elif settings.llm_provider == "gemini":
        return f"gemini/{settings.gemini_model}"
    else:
        model = settings.ollama_vision_model if vision else settings.ollama_model
        return f"ollama/{model}"


def _get_api_base() -> Optional[str]:
    """Get the API base URL for Ollama."""
    if settings.llm_provider == "ollama":
        return settings.ollama_host
    return None


def _get_api_key() -> Optional[str]:
    if settings.llm_provider == "openai":
        return settings.openai_api_key or None
    if settings.llm_provider == "gemini":
        return settings.gemini_api_key or None
    return None


def build_vision_content(prompt: str, images: list[bytes]) -> list[dict[str, Any]]:
    """Build a multimodal message body: the prompt followed by PNG data URLs."""
    content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    for image in images:
        encoded = base64.b64encode(image).decode("ascii")
        content.append(
            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{encoded}"}}
        )
    return content


async def complete(prompt: str, images: list[bytes] | None = None, timeout: float = 60.0) -> str:
    """
    Send one completion request and return the raw response text.

    Raises:
        asyncio.TimeoutError: If the call exceeds the timeout
        ParsingError: If the response has no text
    """
    vision = bool(images)
    content: Any = build_vision_content(prompt, images) if vision else prompt

    response = await asyncio.wait_for(
        acompletion(
            model=_get_model_name(vision=vision),
            messages=[{"role": "user", "content": content}],
            api_base=_get_api_base(),
            api_key=_get_api_key(),
            temperature=0.1,  # Low temperature for consistency
            max_tokens=4096,  # Allow longer responses for transaction lists
            timeout=timeout,
        ),
        timeout=timeout,
    )

    text = response.choices[0].message.content
    if not text or not text.strip():
        raise ParsingError("LLM returned an empty response")
    return text.strip()


def extract_json_payload(content: str) -> Any:
    """
    Pull the JSON value out of an LLM response.

    Tolerates markdown fences and leading prose before the first { or [.

    Raises:
        ParsingError: If no valid JSON can be decoded
    """
    content = content.strip()

    # Extract JSON from markdown code blocks if present
    if "```" in content:
        parts = content.split("```")
        if len(parts) >= 3:
            json_content = parts[1]
            # Remove language identifier (e.g., "json\n")
            if json_content.lstrip().startswith("json"):
                json_content = json_content.lstrip()[4:]
            content = json_content.strip()
        elif len(parts) == 2:
            # Only one ``` marker (incomplete response)
            content = parts[1].strip()

    # Find first { or [
    json_start = min(
        content.find("{") if "{" in content else len(content),
        content.find("[") if "[" in content else len(content),
    )
    if json_start == len(content):
        raise ParsingError("LLM response contains no JSON")
    content = content[json_start:]

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        if content and not content.rstrip().endswith(("}", "]")):
            logger.error("Response appears truncated (doesn't end with } or ])")
        raise ParsingError(f"LLM returned invalid JSON: {e}")


async def llm_extract_json(
    prompt: str,
    response_model: Type[T],
    images: list[bytes] | None = None,
    timeout: float = 60.0,
    max_retries: int = 1,
) -> T:
    """
    Call LLM with a prompt and extract structured JSON output.

    Args:
        prompt: The prompt to send to the LLM
        response_model: Pydantic model class to parse response into
        images: Optional PNG page images for a vision request
        timeout: Timeout in seconds for each LLM call
        max_retries: Total number of attempts (1 means no retry)

    Returns:
        Instance of response_model with parsed data

    Raises:
        ParsingError: If every attempt fails, times out or returns invalid JSON
    """
    attempts = max(1, max_retries)
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            logger.debug(
                f"llm_extract_json attempt {attempt + 1}/{attempts} "
                f"model={_get_model_name(vision=bool(images))}"
            )
            content = await complete(prompt, images=images, timeout=timeout)
            data = extract_json_payload(content)
            return response_model.model_validate(data)

        except asyncio.TimeoutError:
            logger.warning(f"LLM timeout (attempt {attempt + 1}/{attempts})")
            last_error = ParsingError(f"LLM call timed out after {timeout}s")
        except ValidationError as e:
            logger.error(f"Pydantic validation failed (attempt {attempt + 1}/{attempts}): {e}")
            last_error = ParsingError(f"LLM response validation failed: {e}")
        except ParsingError as e:
            logger.error(f"{e} (attempt {attempt + 1}/{attempts})")
            last_error = e
        except Exception as e:
            logger.error(f"LLM call failed (attempt {attempt + 1}/{attempts}): {e}")
            last_error = ParsingError(f"LLM call failed: {e}")

        if attempt < attempts - 1:
            await asyncio.sleep(2 ** attempt)  # Exponential backoff

    raise last_error or ParsingError("Unexpected error in llm_extract_json")
