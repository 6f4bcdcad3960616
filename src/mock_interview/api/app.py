"""
HTTP API.

Exposes the LLM boundaries (resume parsing, outline generation, answer
evaluation), resume text extraction and the persisted QA list for the
results view. Every error is returned as ``{"error": "<message>"}``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Literal

from fastapi import Body, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mock_interview.agents.answer_evaluator import AnswerEvaluator, EvaluatorError
from mock_interview.agents.outline_generator import OutlineGenerationError, OutlineGenerator
from mock_interview.agents.resume_parser import ResumeParseError, ResumeParser, ResumeSectionError
from mock_interview.api.schemas import ExtractedText, ParseResumeRequest, ProcessAnswerRequest
from mock_interview.config import get_settings
from mock_interview.ingestion.resume_ingestion import UnsupportedResumeFormat, extract_text_from_bytes
from mock_interview.models.llm_client import LLMClient, LLMClientBase
from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import AnswerEvaluation, InterviewOutline, QAPair

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB


@lru_cache
def get_llm_client() -> LLMClientBase:
    return LLMClient()


def get_qa_store() -> QAStore:
    return QAStore(get_settings().qa_store_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"API starting with model={settings.llm_model_name} qa_store={settings.qa_store_path}")
    yield
    logger.info("API stopped")


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
    return JSONResponse(status_code=422, content={"error": message})


def create_app() -> FastAPI:
    app = FastAPI(title="Mock Interview API", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/api/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/parse-resume")
    async def parse_resume(
        body: ParseResumeRequest,
        variant: Literal["flat", "sectioned"] = Query(default="flat"),
        llm_client: LLMClientBase = Depends(get_llm_client),
    ) -> dict[str, Any]:
        if not body.text or not body.text.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Resume text is required.")

        parser = ResumeParser(llm_client=llm_client)
        try:
            if variant == "sectioned":
                resume = await parser.parse_sectioned(body.text)
            else:
                resume = await parser.parse(body.text)
        except ResumeSectionError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except ResumeParseError as exc:
            logger.error(f"Error in /api/parse-resume: {exc}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An error occurred while parsing the resume.",
            ) from exc
        return resume.model_dump(by_alias=True)

    @app.post("/api/extract-resume", response_model=ExtractedText)
    async def extract_resume(file: UploadFile = File(...)) -> ExtractedText:
        data = await file.read(MAX_UPLOAD_BYTES + 1)
        if len(data) > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail="File too large (max 10 MB).")
        try:
            text = await asyncio.to_thread(extract_text_from_bytes, data, file.filename, file.content_type)
        except UnsupportedResumeFormat as exc:
            raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except ImportError as exc:
            logger.error(f"Error in /api/extract-resume: {exc}")
            raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(exc)) from exc
        return ExtractedText(text=text)

    @app.post("/api/generate-outline", response_model=InterviewOutline)
    async def generate_outline(
        resume: dict[str, Any] | None = Body(default=None),
        llm_client: LLMClientBase = Depends(get_llm_client),
    ) -> InterviewOutline:
        if not resume:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Valid resume data is required.")
        try:
            return await OutlineGenerator(llm_client=llm_client).generate(resume)
        except OutlineGenerationError as exc:
            logger.error(f"Error in /api/generate-outline: {exc}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    @app.post("/api/process-answer", response_model=AnswerEvaluation)
    async def process_answer(
        body: ProcessAnswerRequest,
        llm_client: LLMClientBase = Depends(get_llm_client),
    ) -> AnswerEvaluation:
        evaluator = AnswerEvaluator(llm_client=llm_client)
        try:
            return await evaluator.evaluate(body.conversation_history, body.user_answer, body.remaining_questions)
        except EvaluatorError as exc:
            logger.error(f"Error in /api/process-answer: {exc}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(exc) or "An error occurred.",
            ) from exc

    @app.get("/api/feedback", response_model=list[QAPair])
    async def feedback(store: QAStore = Depends(get_qa_store)) -> list[QAPair]:
        return store.load()

    return app


app = create_app()
