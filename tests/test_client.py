import json

import httpx
import pytest

from clearning.client import ClientError, LearningClient
from clearning.schemas import SERVICE_PREFIX

LESSON = {
    "lessonId": 1,
    "title": "Hello, World!",
    "description": "Print a greeting",
    "exampleCode": "int main() { return 0; }\n",
    "learningObjectives": ["printf"],
    "testCases": [{"input": "", "expectedOutput": "Hello, World!\n", "description": "greets"}],
}


def _client(handler) -> LearningClient:
    return LearningClient("http://learning.test", transport=httpx.MockTransport(handler))


def test_get_lesson_posts_lesson_id() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=LESSON)

    lesson = _client(handler).get_lesson(1)
    assert seen == {"path": f"{SERVICE_PREFIX}/GetLesson", "body": {"lessonId": 1}}
    assert lesson.title == "Hello, World!"
    assert lesson.learning_objectives == ["printf"]
    assert lesson.test_cases[0].expected_output == "Hello, World!\n"


def test_validate_code_sends_user_id_when_given() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"isValid": False, "testResults": [], "feedback": "error: expected ';'", "canProceed": False},
        )

    client = _client(handler)
    result = client.validate_code(1, "int main() {}", "alice")
    client.validate_code(1, "int main() {}")
    assert bodies == [
        {"lessonId": 1, "code": "int main() {}", "userId": "alice"},
        {"lessonId": 1, "code": "int main() {}"},
    ]
    assert result.is_valid is False
    assert result.feedback == "error: expected ';'"


def test_get_progress() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"userId": "alice"}
        return httpx.Response(
            200,
            json={"currentLesson": 2, "completedLessons": [1], "completionPercentage": 25.0, "nextLesson": 2},
        )

    progress = _client(handler).get_progress("alice")
    assert progress.current_lesson == 2
    assert progress.completed_lessons == [1]
    assert progress.completion_percentage == 25.0


def test_error_status_uses_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "lesson 7 not found"})

    with pytest.raises(ClientError, match="lesson 7 not found") as exc:
        _client(handler).get_lesson(7)
    assert exc.value.status_code == 404


def test_error_status_without_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(ClientError, match="request failed with status 502"):
        _client(handler).get_progress("alice")


def test_unreachable_service() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ClientError, match="could not reach learning service") as exc:
        _client(handler).get_lesson(1)
    assert exc.value.status_code is None


def test_malformed_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"title": "missing fields"})

    with pytest.raises(ClientError, match="unexpected response from GetLesson"):
        _client(handler).get_lesson(1)
