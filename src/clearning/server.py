"""HTTP transport for the learning service."""

from __future__ import annotations

import logging

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .catalog import LessonNotFound
from .config import ServerSettings
from .grader import GradingError
from .schemas import (
    SERVICE_PREFIX,
    CodeSubmission,
    ErrorResponse,
    LessonRequest,
    LessonResponse,
    ProgressRequest,
    ProgressResponse,
    ValidationResponse,
)
from .service import LearningService, LessonLocked


logger = structlog.get_logger()


def configure_logging(log_format: str = "json", level: int = logging.INFO) -> None:
    """Configure structlog once for the server process."""
    renderer = structlog.dev.ConsoleRenderer() if log_format == "console" else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


def create_app(service: LearningService) -> FastAPI:
    """Create the FastAPI application around a service instance."""
    app = FastAPI(
        title="C Learning Service",
        description="Lesson content, code grading, and learner progress",
        version=__version__,
    )
    app.state.service = service
    errors = {404: {"model": ErrorResponse}, 412: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}

    @app.exception_handler(LessonNotFound)
    async def lesson_not_found(request: Request, exc: LessonNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(LessonLocked)
    async def lesson_locked(request: Request, exc: LessonLocked) -> JSONResponse:
        return JSONResponse(status_code=412, content={"detail": str(exc)})

    @app.exception_handler(GradingError)
    async def grading_failed(request: Request, exc: GradingError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": f"grading could not run: {exc}"})

    @app.get("/health")
    def health() -> dict[str, object]:
        """Health check endpoint."""
        return {"status": "healthy", "lessons": len(service.catalog)}

    @app.post(f"{SERVICE_PREFIX}/GetLesson", response_model=LessonResponse, responses=errors)
    def get_lesson(request: LessonRequest) -> LessonResponse:
        return LessonResponse.from_lesson(service.get_lesson(request.lesson_id))

    @app.post(f"{SERVICE_PREFIX}/ValidateCode", response_model=ValidationResponse, responses=errors)
    def validate_code(request: CodeSubmission) -> ValidationResponse:
        outcome = service.validate_code(request.lesson_id, request.code, request.user_id)
        return ValidationResponse.from_outcome(outcome)

    @app.post(f"{SERVICE_PREFIX}/GetProgress", response_model=ProgressResponse)
    def get_progress(request: ProgressRequest) -> ProgressResponse:
        return ProgressResponse.from_report(service.get_progress(request.user_id))

    @app.on_event("shutdown")
    def shutdown_event() -> None:
        logger.info("clearning_server_stopping")
        service.close()

    return app


def serve(settings: ServerSettings) -> None:
    """Load lessons and run the HTTP server until interrupted."""
    import uvicorn

    configure_logging(settings.log_format)
    service = LearningService.create(settings.lessons_dir, settings.db_path, settings.grader)
    logger.info(
        "clearning_server_starting",
        version=__version__,
        host=settings.host,
        port=settings.port,
        compiler=" ".join(settings.grader.compiler),
        persistent_progress=settings.db_path is not None,
    )
    uvicorn.run(create_app(service), host=settings.host, port=settings.port)
