"""Request and response models for the learning service HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import Lesson, ValidationOutcome
from .service import ProgressReport

SERVICE_PREFIX = "/clearning.LearningService"


class ApiModel(BaseModel):
    """Base model using camelCase JSON field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LessonRequest(ApiModel):
    lesson_id: int = Field(..., ge=1, description="Lesson identifier")


class TestCaseModel(ApiModel):
    """A test case as shown to the learner."""

    __test__ = False

    input: str = Field("", description="Text fed to the program on stdin")
    expected_output: str = Field(..., description="Expected program output")
    description: str = Field("", description="Human-readable test description")


class LessonResponse(ApiModel):
    lesson_id: int = Field(..., description="Lesson identifier")
    title: str
    description: str
    example_code: str = Field(..., description="Example C program for the lesson")
    learning_objectives: list[str] = Field(default_factory=list)
    test_cases: list[TestCaseModel] = Field(default_factory=list)

    @classmethod
    def from_lesson(cls, lesson: Lesson) -> LessonResponse:
        return cls(
            lesson_id=lesson.id,
            title=lesson.title,
            description=lesson.description,
            example_code=lesson.example_code,
            learning_objectives=list(lesson.objectives),
            test_cases=[
                TestCaseModel(input=case.input, expected_output=case.expected_output, description=case.description)
                for case in lesson.test_cases
            ],
        )


class CodeSubmission(ApiModel):
    lesson_id: int = Field(..., ge=1, description="Lesson the code is submitted for")
    code: str = Field(..., description="C source code")
    user_id: str | None = Field(None, description="Learner whose progress a full pass should update")


class TestResultModel(ApiModel):
    """Verdict for one test case."""

    __test__ = False

    passed: bool
    test_case_description: str = ""
    expected_output: str = ""
    actual_output: str = ""
    timed_out: bool = False


class ValidationResponse(ApiModel):
    is_valid: bool = Field(..., description="True if every test passed")
    test_results: list[TestResultModel] = Field(default_factory=list)
    feedback: str = Field("", description="Summary or compiler diagnostics")
    can_proceed: bool = Field(False, description="True if the learner may move to the next lesson")

    @classmethod
    def from_outcome(cls, outcome: ValidationOutcome) -> ValidationResponse:
        return cls(
            is_valid=outcome.all_tests_passed,
            test_results=[
                TestResultModel(
                    passed=verdict.passed,
                    test_case_description=verdict.description,
                    expected_output=verdict.expected_output,
                    actual_output=verdict.actual_output,
                    timed_out=verdict.timed_out,
                )
                for verdict in outcome.verdicts
            ],
            feedback=outcome.feedback,
            can_proceed=outcome.can_proceed,
        )


class ProgressRequest(ApiModel):
    user_id: str = Field(..., min_length=1, description="Learner identifier")


class ProgressResponse(ApiModel):
    current_lesson: int
    completed_lessons: list[int] = Field(default_factory=list)
    completion_percentage: float = 0.0
    next_lesson: int = 1

    @classmethod
    def from_report(cls, report: ProgressReport) -> ProgressResponse:
        return cls(
            current_lesson=report.current_lesson,
            completed_lessons=list(report.completed_lessons),
            completion_percentage=report.completion_percentage,
            next_lesson=report.next_lesson,
        )


class ErrorResponse(ApiModel):
    detail: str
