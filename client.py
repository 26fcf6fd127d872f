import os
import time
import logging
import argparse
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# The base URL of a running text-to-deck service
SERVICE_URL = os.getenv("SERVICE_URL", "http://localhost:8080")
REQUEST_TIMEOUT = 120
MAX_AUTO_RETRIES = 2
RETRYABLE_MARKERS = ("timeout", "rate limit", "network")


def _is_retryable(error_message: str) -> bool:
    message = error_message.lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


def _post_generate(base_url: str, form: Dict[str, str], template_path: str) -> Dict[str, Any]:
    url = f"{base_url.rstrip('/')}/api/generate"
    try:
        with open(template_path, "rb") as template:
            files = {"templateFile": (os.path.basename(template_path), template)}
            response = requests.post(url, data=form, files=files, timeout=REQUEST_TIMEOUT)
    except requests.exceptions.Timeout:
        return {"success": False, "error": "Request timeout. Please try again."}
    except requests.exceptions.RequestException as e:
        logger.error(f"Could not reach {url}: {e}")
        return {"success": False, "error": "Network error occurred"}

    try:
        data = response.json()
    except ValueError:
        data = {}
    if response.ok:
        return data
    return {"success": False, "error": data.get("error") or "Failed to generate presentation"}


def generate_presentation(
    base_url: str,
    text: str,
    api_key: str,
    provider: str,
    template_path: str,
    guidance: str = "",
    model: Optional[str] = None,
    generate_speaker_notes: bool = True,
    max_retries: int = MAX_AUTO_RETRIES,
) -> Dict[str, Any]:
    """
    Calls the service to turn text into a deck styled after template_path.

    Timeouts, rate limits and network failures are retried automatically
    (up to max_retries times, waiting 1s, 2s, ...). Other failures are
    returned as-is.

    Returns:
        The service response: {success, downloadUrl?, preview?, error?}.
    """
    form = {
        "text": text,
        "guidance": guidance or "",
        "apiKey": api_key,
        "llmProvider": provider,
        "generateSpeakerNotes": "true" if generate_speaker_notes else "false",
    }
    if model:
        form["model"] = model

    retry_count = 0
    while True:
        result = _post_generate(base_url, form, template_path)
        if result.get("success") and result.get("downloadUrl"):
            logger.info(f"Presentation ready: {result['downloadUrl']}")
            return result

        error = result.get("error") or "Failed to generate presentation"
        if retry_count >= max_retries or not _is_retryable(error):
            logger.error(f"Generation failed: {error}")
            return {"success": False, "error": error}

        wait_seconds = 2 ** retry_count
        retry_count += 1
        logger.warning(f"{error} Retry attempt {retry_count}/{max_retries} in {wait_seconds}s...")
        time.sleep(wait_seconds)


def download_presentation(base_url: str, download_url: str, destination: str) -> str:
    url = f"{base_url.rstrip('/')}{download_url}"
    with requests.get(url, stream=True, timeout=REQUEST_TIMEOUT) as response:
        response.raise_for_status()
        with open(destination, "wb") as out:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                out.write(chunk)
    logger.info(f"Saved presentation to {destination}")
    return destination


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate a themed PowerPoint deck from a text file.")
    parser.add_argument("text_file", help="Text or markdown file to turn into slides")
    parser.add_argument("template", help=".pptx or .potx template to borrow the style from")
    parser.add_argument("-o", "--output", default="presentation.pptx")
    parser.add_argument("--provider", default="openai", choices=["openai", "anthropic", "gemini", "openrouter"])
    parser.add_argument("--model", default=None)
    parser.add_argument("--guidance", default="")
    parser.add_argument("--api-key", default=os.getenv("LLM_API_KEY"))
    parser.add_argument("--no-notes", action="store_true", help="Skip speaker notes")
    parser.add_argument("--url", default=SERVICE_URL)
    args = parser.parse_args(argv)

    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())

    if not args.api_key:
        parser.error("an API key is required (--api-key or LLM_API_KEY)")

    with open(args.text_file, encoding="utf-8") as f:
        text = f.read()

    result = generate_presentation(
        args.url, text, args.api_key, args.provider, args.template,
        guidance=args.guidance, model=args.model,
        generate_speaker_notes=not args.no_notes,
    )
    if not result.get("success"):
        print(f"ERROR: {result.get('error')}")
        return 1

    for slide in result.get("preview", []):
        print(f"{slide['slideNumber']:>2}. {slide['title']}")
    download_presentation(args.url, result["downloadUrl"], args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
