"""Core domain models for lessons, grading verdicts, and learner progress."""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class TestCase:
    """One stdin/expected-stdout pair used to grade a submission."""

    __test__ = False

    input: str
    expected_output: str
    description: str


@dataclass(frozen=True)
class Lesson:
    """Lesson content as loaded from the lesson source."""

    id: int
    title: str
    description: str
    example_code: str
    objectives: tuple[str, ...]
    test_cases: tuple[TestCase, ...]
    prerequisites: frozenset[int] = frozenset()


@dataclass(frozen=True)
class TestVerdict:
    """Outcome of running one test case against one submission."""

    __test__ = False

    description: str
    passed: bool
    expected_output: str
    actual_output: str
    timed_out: bool = False


@dataclass(frozen=True)
class ValidationOutcome:
    """Aggregate grading result for one submission."""

    all_tests_passed: bool
    verdicts: tuple[TestVerdict, ...]
    feedback: str
    can_proceed: bool
    compiled: bool = True

    @property
    def failed_count(self) -> int:
        return sum(1 for verdict in self.verdicts if not verdict.passed)


@dataclass(frozen=True)
class UserProgress:
    """Completed lessons and current lesson pointer for one learner."""

    user_id: str
    current_lesson: int = 1
    completed_lessons: frozenset[int] = field(default_factory=frozenset)

    def is_completed(self, lesson_id: int) -> bool:
        return lesson_id in self.completed_lessons

    def with_completed(self, lesson_id: int) -> UserProgress:
        """Return progress with `lesson_id` completed.

        Completing an already-completed lesson returns `self` unchanged. The current
        lesson pointer only advances when the completed lesson is the current one.
        """
        if lesson_id in self.completed_lessons:
            return self
        current = self.current_lesson + 1 if self.current_lesson == lesson_id else self.current_lesson
        return replace(self, current_lesson=current, completed_lessons=self.completed_lessons | {lesson_id})
