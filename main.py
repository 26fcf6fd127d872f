import os
import uuid
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

# Local imports
import llm_service
import ppt_generator
import template_service
from models import GenerationResponse, HealthResponse, SlidePreview

# Logging configuration
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# --- Configuration ---
PORT = int(os.getenv("PORT", "8080"))
APP_ENV = os.getenv("APP_ENV", "development")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "uploads"))
OUTPUT_DIR = os.getenv("OUTPUT_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "output"))
MAX_TEMPLATE_BYTES = int(os.getenv("MAX_TEMPLATE_BYTES", str(50 * 1024 * 1024)))
MAX_TEXT_LENGTH = int(os.getenv("MAX_TEXT_LENGTH", "50000"))
ALLOWED_TEMPLATE_EXTENSIONS = (".pptx", ".potx")
UPLOAD_CHUNK_SIZE = 1024 * 1024
PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
TRUTHY_VALUES = ("true", "1", "on", "yes")


class TemplateTooLargeError(Exception):
    pass


# --- FastAPI App ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    logger.info(f"Serving on port {PORT} ({APP_ENV}); uploads in {UPLOAD_DIR}, output in {OUTPUT_DIR}")
    yield


app = FastAPI(
    title="Text to Deck Service",
    description="Turns free-form text into a PowerPoint deck styled after an uploaded template.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Helper Functions ---
def error_response(status_code: int, message: str) -> JSONResponse:
    body = GenerationResponse(success=False, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def parse_bool(value: Optional[str]) -> bool:
    return str(value).strip().lower() in TRUTHY_VALUES if value is not None else False


def validate_request(text, api_key, provider, model, template_file) -> Optional[str]:
    """Returns the first validation failure message, or None when the request is acceptable."""
    if not text or not text.strip():
        return "Text content is required"
    if len(text) > MAX_TEXT_LENGTH:
        return f"Text content is too long (max {MAX_TEXT_LENGTH:,} characters)"
    if not api_key or not api_key.strip():
        return "API key is required"
    if template_file is None or not template_file.filename:
        return "PowerPoint template file is required"
    if not template_file.filename.lower().endswith(ALLOWED_TEMPLATE_EXTENSIONS):
        return "Only .pptx and .potx files are allowed"
    if provider not in llm_service.SUPPORTED_PROVIDERS:
        return f"Unsupported LLM provider: {provider}"
    if provider == "openrouter" and not model:
        return "Model selection is required when using OpenRouter"
    return None


async def save_upload(template_file: UploadFile) -> str:
    """Streams the upload to UPLOAD_DIR, giving up as soon as it crosses MAX_TEMPLATE_BYTES."""
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    extension = os.path.splitext(template_file.filename)[1].lower()
    upload_path = os.path.join(UPLOAD_DIR, f"templateFile-{uuid.uuid4().hex}{extension}")

    written = 0
    try:
        with open(upload_path, "wb") as out:
            while True:
                chunk = await template_file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > MAX_TEMPLATE_BYTES:
                    raise TemplateTooLargeError(
                        f"Template file is too large (max {MAX_TEMPLATE_BYTES // (1024 * 1024)}MB)"
                    )
                out.write(chunk)
    except BaseException:
        remove_quietly(upload_path)
        raise
    return upload_path


def remove_quietly(path: Optional[str]):
    if path and os.path.exists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")


def classify_generation_error(error: Exception) -> Tuple[int, str]:
    message = str(error)
    if "API key" in message or "authentication" in message:
        return 401, "Invalid API key or authentication failed"
    if "rate limit" in message:
        return 429, "API rate limit exceeded. Please try again in a few minutes."
    if "timeout" in message:
        return 408, "Request timeout. Please try again."
    if "quota" in message or "billing" in message:
        return 402, "API quota exceeded or billing issue"
    return 500, message or "Failed to generate presentation"


# --- Main Endpoint --- #
@app.post("/api/generate", summary="Generate a themed PowerPoint from text")
async def generate_presentation_endpoint(
    text: Optional[str] = Form(None),
    guidance: Optional[str] = Form(None),
    apiKey: Optional[str] = Form(None),
    llmProvider: str = Form("openai"),
    model: Optional[str] = Form(None),
    generateSpeakerNotes: Optional[str] = Form(None),
    templateFile: Optional[UploadFile] = File(None),
):
    validation_error = validate_request(text, apiKey, llmProvider, model, templateFile)
    if validation_error:
        logger.info(f"Rejected request: {validation_error}")
        return error_response(400, validation_error)

    upload_path = None
    try:
        try:
            upload_path = await save_upload(templateFile)
        except TemplateTooLargeError as e:
            logger.info(f"Rejected request: {e}")
            return error_response(400, str(e))

        label = f"{llmProvider} ({model})" if model else llmProvider
        logger.info(f"Generating presentation structure with {label}...")

        # 1. Call LLM to get structured data
        structure = await run_in_threadpool(
            llm_service.generate_presentation_structure,
            text, guidance or "", apiKey, llmProvider, model or None,
            parse_bool(generateSpeakerNotes),
        )

        # 2. Extract the palette from the template
        logger.info("Extracting template style...")
        style = await run_in_threadpool(template_service.extract_template_style, upload_path)

        # 3. Generate the presentation
        os.makedirs(OUTPUT_DIR, exist_ok=True)
        output_filename = f"presentation-{uuid.uuid4()}.pptx"
        output_path = os.path.join(OUTPUT_DIR, output_filename)
        await run_in_threadpool(ppt_generator.save_presentation, structure, style, output_path)

        preview = [
            SlidePreview(
                title=slide.title,
                content=slide.content,
                speakerNotes=slide.speakerNotes,
                slideNumber=index + 1,
            )
            for index, slide in enumerate(structure.slides)
        ]
        body = GenerationResponse(
            success=True,
            downloadUrl=f"/api/download/{output_filename}",
            preview=preview,
        )
        return JSONResponse(content=body.model_dump(exclude_none=True))

    except Exception as e:
        logger.error(f"Error generating presentation: {e}", exc_info=True)
        status_code, message = classify_generation_error(e)
        return error_response(status_code, message)

    finally:
        remove_quietly(upload_path)


@app.get("/api/download/{filename}", summary="Download a generated presentation")
async def download_presentation(filename: str):
    output_root = os.path.realpath(OUTPUT_DIR)
    file_path = os.path.realpath(os.path.join(output_root, filename))
    if os.path.dirname(file_path) != output_root or not os.path.isfile(file_path):
        return error_response(404, "File not found")
    return FileResponse(file_path, media_type=PPTX_MEDIA_TYPE, filename=filename)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=APP_ENV,
        port=PORT,
    )


@app.get("/")
async def root():
    return {
        "message": "Presentation Generator API is running.",
        "endpoints": {
            "health": "/api/health",
            "generate": "/api/generate (POST)",
            "download": "/api/download/:filename",
        },
    }


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    message = str(exc) if APP_ENV == "development" else "Internal server error"
    return error_response(500, message)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
