import os
import json
import time
import logging
from typing import Callable, Dict, Optional

import requests
from pydantic import ValidationError

from models import PresentationStructure

logger = logging.getLogger(__name__)

# --- Configuration ---
HTTP_REFERER = os.getenv("HTTP_REFERER", "http://localhost:3001")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

DEFAULT_TIMEOUT = 60
OPENROUTER_TIMEOUT = 90
MAX_TOKENS = 3000
TEMPERATURE = 0.7
MAX_RETRIES = 3

SYSTEM_PROMPT = (
    "You are an expert presentation designer. "
    "Create structured presentation content from the given text."
)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "gemini", "openrouter")


# --- Errors ---
class LLMProviderError(Exception):
    """Raised when a provider call fails or returns something unusable."""


class StructureParseError(ValueError):
    """Raised when the LLM output is not a valid presentation structure."""


class StructureGenerationError(Exception):
    """Raised once every retry has been used up."""


# --- Prompt ---
def build_prompt(text: str, guidance: str = "", generate_speaker_notes: bool = True) -> str:
    guidance_line = f"Follow this guidance: {guidance}" if guidance else ""
    notes_rule = (
        "6. Include detailed speaker notes for each slide to help with presentation delivery"
        if generate_speaker_notes else ""
    )
    notes_field = (
        '"speakerNotes": "Detailed speaker notes explaining the slide content, '
        'key points to emphasize, and transition to next slide"'
        if generate_speaker_notes else '"speakerNotes": ""'
    )
    notes_tip = (
        "- Speaker notes should be comprehensive and helpful for presentation delivery"
        if generate_speaker_notes else ""
    )

    return f"""
Please analyze the following text and create a structured presentation. {guidance_line}

Text to analyze:
{text}

Create a presentation structure with:
1. A compelling title for the overall presentation
2. 6-10 slides with clear titles and bullet points
3. Each slide should have 3-5 bullet points maximum
4. Make it engaging and well-structured
5. Ensure logical flow between slides
{notes_rule}

Return the result as a JSON object with this exact structure:
{{
  "title": "Overall Presentation Title",
  "slides": [
    {{
      "title": "Slide Title",
      "content": ["bullet point 1", "bullet point 2", "bullet point 3"],
      {notes_field}
    }}
  ]
}}

Important:
- Keep bullet points concise but informative
- Ensure each slide has a clear focus
- Create smooth transitions between slides
{notes_tip}
- Only return the JSON object, no additional text.
"""


# --- Provider calls ---
def _post(provider: str, url: str, *, headers: Dict[str, str], payload: dict,
          timeout: int) -> dict:
    """POSTs to a provider and turns transport/HTTP failures into readable errors."""
    try:
        response = requests.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise LLMProviderError(f"{provider} request timeout after {timeout}s") from e
    except requests.exceptions.RequestException as e:
        # The exception text embeds the request URL
        raise LLMProviderError(f"{provider} request failed: {type(e).__name__}") from e

    status = response.status_code
    if status in (401, 403):
        raise LLMProviderError(f"Invalid API key or authentication failed ({provider}, HTTP {status})")
    if status == 429:
        raise LLMProviderError(f"{provider} rate limit exceeded (HTTP 429)")
    if status == 402:
        raise LLMProviderError(f"{provider} quota or billing issue (HTTP 402)")
    if status == 408 or status == 504:
        raise LLMProviderError(f"{provider} gateway timeout (HTTP {status})")
    if status >= 400:
        raise LLMProviderError(f"{provider} returned HTTP {status}: {response.text[:300]}")

    try:
        return response.json()
    except ValueError as e:
        raise LLMProviderError(f"{provider} returned a non-JSON body") from e


def call_openai(api_key: str, prompt: str, model: Optional[str] = None) -> str:
    data = _post(
        "OpenAI", OPENAI_URL,
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        payload={
            "model": model or OPENAI_MODEL,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        },
        timeout=DEFAULT_TIMEOUT,
    )
    try:
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMProviderError(f"Unexpected response format from OpenAI: {e}") from e


def call_anthropic(api_key: str, prompt: str, model: Optional[str] = None) -> str:
    data = _post(
        "Anthropic", ANTHROPIC_URL,
        headers={
            "x-api-key": api_key,
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        },
        payload={
            "model": model or ANTHROPIC_MODEL,
            "max_tokens": MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        },
        timeout=DEFAULT_TIMEOUT,
    )
    try:
        parts = [c["text"] for c in data["content"] if c.get("type") == "text"]
    except (KeyError, TypeError) as e:
        raise LLMProviderError(f"Unexpected response format from Anthropic: {e}") from e
    if not parts:
        raise LLMProviderError("Unexpected response format from Anthropic: no text content")
    return "".join(parts)


def call_gemini(api_key: str, prompt: str, model: Optional[str] = None) -> str:
    data = _post(
        "Gemini", GEMINI_URL.format(model=model or GEMINI_MODEL),
        headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
        payload={
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": TEMPERATURE, "maxOutputTokens": MAX_TOKENS},
        },
        timeout=DEFAULT_TIMEOUT,
    )
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMProviderError(f"Unexpected response format from Gemini: {e}") from e


def call_openrouter(api_key: str, prompt: str, model: Optional[str] = None) -> str:
    if not model:
        raise LLMProviderError("Model is required for OpenRouter")
    data = _post(
        "OpenRouter", OPENROUTER_URL,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": HTTP_REFERER,
            "X-Title": "Presentation Generator",
        },
        payload={
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        },
        timeout=OPENROUTER_TIMEOUT,
    )
    try:
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMProviderError(f"Unexpected response format from OpenRouter: {e}") from e


PROVIDER_CALLS: Dict[str, Callable[[str, str, Optional[str]], str]] = {
    "openai": call_openai,
    "anthropic": call_anthropic,
    "gemini": call_gemini,
    "openrouter": call_openrouter,
}


def call_provider(provider: str, api_key: str, prompt: str, model: Optional[str] = None) -> str:
    call = PROVIDER_CALLS.get(provider)
    if call is None:
        raise LLMProviderError(f"Unsupported LLM provider: {provider}")
    return call(api_key, prompt, model)


# --- Response parsing ---
def extract_json_text(raw: str) -> str:
    """Strips markdown fences and narrows the text to the outermost JSON object."""
    cleaned = raw.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-len("```")]
    cleaned = cleaned.strip()

    first_brace = cleaned.find("{")
    last_brace = cleaned.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        cleaned = cleaned[first_brace:last_brace + 1]
    return cleaned


def parse_structure(raw: str) -> PresentationStructure:
    cleaned = extract_json_text(raw)
    logger.debug(f"Cleaned response length: {len(cleaned)}")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Response that failed to parse: {cleaned[:500]}")
        raise StructureParseError("Invalid JSON response from LLM") from e

    if not isinstance(data, dict):
        raise StructureParseError("Response is not a valid object")
    if not data.get("title") or not isinstance(data["title"], str):
        raise StructureParseError("Missing or invalid title in response")
    if not isinstance(data.get("slides"), list):
        raise StructureParseError("Missing or invalid slides array in response")

    for i, slide in enumerate(data["slides"], start=1):
        if not isinstance(slide, dict):
            raise StructureParseError(f"Slide {i} is not a valid object")
        if not slide.get("title") or not isinstance(slide["title"], str):
            raise StructureParseError(f"Slide {i} is missing a valid title")
        if not isinstance(slide.get("content"), list):
            raise StructureParseError(f"Slide {i} is missing a valid content array")
        if not slide["content"]:
            raise StructureParseError(f"Slide {i} has no content")

    try:
        return PresentationStructure(**data)
    except ValidationError as e:
        raise StructureParseError(f"Slide structure failed validation: {e}") from e


# --- Main entry point ---
def generate_presentation_structure(
    text: str,
    guidance: str,
    api_key: str,
    provider: str,
    model: Optional[str] = None,
    generate_speaker_notes: bool = True,
) -> PresentationStructure:
    """Asks the provider for a slide structure, retrying with exponential backoff."""
    prompt = build_prompt(text, guidance, generate_speaker_notes)
    label = f"{provider} ({model})" if model else provider

    last_error: Optional[Exception] = None
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            logger.info(f"Attempt {attempt} for {label}")
            raw = call_provider(provider, api_key, prompt, model)
            structure = parse_structure(raw)
            logger.info(f"Successfully generated {len(structure.slides)} slides")
            return structure
        except Exception as e:
            last_error = e
            logger.warning(f"Attempt {attempt} failed: {e}")
            if attempt < MAX_RETRIES:
                wait_seconds = 2 ** attempt
                logger.info(f"Waiting {wait_seconds}s before retry...")
                time.sleep(wait_seconds)

    raise StructureGenerationError(
        f"Failed to generate presentation structure after {MAX_RETRIES} attempts: {last_error}"
    ) from last_error
