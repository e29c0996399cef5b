"""HTTP client for the learning service."""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel

from .schemas import SERVICE_PREFIX, LessonResponse, ProgressResponse, ValidationResponse

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)

logger = structlog.get_logger()


class ClientError(RuntimeError):
    """Raised when the service cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LearningClient:
    """Calls the learning service RPC endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def get_lesson(self, lesson_id: int) -> LessonResponse:
        return self._call("GetLesson", {"lessonId": lesson_id}, LessonResponse)

    def validate_code(self, lesson_id: int, code: str, user_id: str | None = None) -> ValidationResponse:
        payload: dict[str, Any] = {"lessonId": lesson_id, "code": code}
        if user_id is not None:
            payload["userId"] = user_id
        return self._call("ValidateCode", payload, ValidationResponse)

    def get_progress(self, user_id: str) -> ProgressResponse:
        return self._call("GetProgress", {"userId": user_id}, ProgressResponse)

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, payload: dict[str, Any], model: type[ResponseModel]) -> ResponseModel:
        try:
            response = self._client.post(f"{SERVICE_PREFIX}/{method}", json=payload)
        except httpx.HTTPError as exc:
            logger.debug("request_failed", method=method, error=str(exc))
            raise ClientError(f"could not reach learning service: {exc}") from exc

        if response.is_error:
            raise ClientError(_error_detail(response), status_code=response.status_code)
        try:
            return model.model_validate(response.json())
        except ValueError as exc:
            raise ClientError(f"unexpected response from {method}: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return f"request failed with status {response.status_code}"
