import asyncio
import random
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import get_settings
from .llm.questions import generate_questions
from .log import setup_logging, get_logger
from .pipeline.run import AnalysisPipeline, StoredUpload
from .store.db import init_db
from .store.repo import Repo

settings = get_settings()
setup_logging()
logger = get_logger("api")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
LEADING_INT_RE = re.compile(r"^\s*[+-]?\d+")
DEFAULT_TICKET_LIMIT = 50
UPLOAD_CHUNK_BYTES = 1024 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A database that cannot be initialised aborts startup
    init_db()
    logger.info(f"Database ready at {settings.DB_PATH}")
    yield


app = FastAPI(title="HomeFix API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class QuestionRequest(BaseModel):
    description: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error(404, "Not found")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return _error(500, "Internal server error")


@lru_cache()
def get_pipeline() -> AnalysisPipeline:
    return AnalysisPipeline(settings)


def _upload_filename(original_name: str) -> str:
    return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{Path(original_name).suffix}"


async def _read_limited(upload: UploadFile, max_bytes: int) -> Optional[bytes]:
    """Read the upload in chunks; None as soon as it grows past max_bytes."""
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        total += len(chunk)
        if total > max_bytes:
            return None
        chunks.append(chunk)


def _parse_limit(raw: Optional[str]) -> int:
    """Leading integer of the query value; missing, unparsable or zero means the default."""
    match = LEADING_INT_RE.match(raw or "")
    limit = int(match.group(0)) if match else 0
    return limit or DEFAULT_TICKET_LIMIT


@app.post("/api/analyze")
async def analyze(
    background_tasks: BackgroundTasks,
    description: Optional[str] = Form(default=None),
    email: Optional[str] = Form(default=None),
    image: Optional[UploadFile] = File(default=None),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    has_image = image is not None and bool(image.filename)
    if not description and not has_image:
        return _error(400, "Provide a description or an image.")

    upload = None
    if has_image:
        if not (image.content_type or "").startswith("image/"):
            return _error(400, "Only image files are allowed")
        data = await _read_limited(image, settings.MAX_UPLOAD_BYTES)
        if data is None:
            return _error(400, "File size too large. Maximum size is 25MB.")

        path = Path(settings.UPLOAD_DIR) / _upload_filename(image.filename)
        path.write_bytes(data)
        upload = StoredUpload(
            path=str(path),
            original_name=image.filename,
            mime=image.content_type,
            size_bytes=len(data),
        )

    start = time.time()
    try:
        outcome = await pipeline.run(description, email or None, upload)
    except Exception:
        logger.exception("Analysis error")
        return _error(500, "Server error")

    background_tasks.add_task(pipeline.persist, outcome)
    logger.info(f"Analysis for ticket {outcome.ticket_id} completed in {int((time.time() - start) * 1000)}ms")
    return outcome.to_response()


@app.get("/api/tickets")
async def list_tickets(limit: Optional[str] = None):
    try:
        return await asyncio.to_thread(Repo.get_tickets_with_analysis, _parse_limit(limit))
    except Exception:
        logger.exception("Failed to fetch tickets")
        return _error(500, "Failed to fetch tickets")


@app.post("/api/contact")
async def contact(payload: ContactRequest):
    if not all([payload.name, payload.email, payload.subject, payload.message]):
        return _error(400, "All fields are required (name, email, subject, message).")
    if not EMAIL_RE.match(payload.email):
        return _error(400, "Please provide a valid email address.")

    try:
        submission_id = await asyncio.to_thread(
            Repo.create_contact_submission,
            payload.name.strip(),
            payload.email.strip(),
            payload.subject.strip(),
            payload.message.strip(),
        )
    except Exception:
        logger.exception("Contact form submission error")
        return _error(500, "Failed to submit your message. Please try again.")

    logger.info(f"Contact form submission saved: {submission_id}")
    return {
        "success": True,
        "message": "Thank you for your message! We'll get back to you soon.",
        "submissionId": submission_id,
    }


@app.post("/api/generate-questions")
async def questions(payload: QuestionRequest):
    if not payload.description or not payload.description.strip():
        return _error(400, "Description is required")

    description = payload.description.strip()
    logger.info(f"Generating questions for: {description[:100]!r}")
    question_set = await asyncio.to_thread(generate_questions, description, settings)
    return {"success": True, "questionSet": question_set.model_dump()}


@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/")
async def root():
    return {"name": "HomeFix API", "version": __version__, "status": "running"}


def run():
    import uvicorn
    uvicorn.run("homefix.main_api:app", host="0.0.0.0", port=4000)


if __name__ == "__main__":
    run()
