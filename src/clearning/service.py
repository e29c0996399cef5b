"""Application service tying lessons, grading, and learner progress together."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from .catalog import LessonCatalog
from .content_loader import load_lessons, load_lessons_from_dir
from .gate import can_attempt, completion_percentage, missing_prerequisites, next_available, record_success
from .grader import Grader, GraderConfig, GradingError
from .models import Lesson, ValidationOutcome
from .progress import MemoryProgressStore, ProgressStore, SqliteProgressStore

logger = structlog.get_logger()


class LessonLocked(PermissionError):
    """Raised when a learner submits for a lesson whose prerequisites are incomplete."""

    def __init__(self, lesson_id: int, missing: list[int]) -> None:
        super().__init__(lesson_id, missing)
        self.lesson_id = lesson_id
        self.missing = missing

    def __str__(self) -> str:
        required = ", ".join(str(item) for item in self.missing)
        return f"lesson {self.lesson_id} requires completing lesson(s) {required} first"


@dataclass(frozen=True)
class ProgressReport:
    """Progress summary for one learner."""

    user_id: str
    current_lesson: int
    completed_lessons: tuple[int, ...]
    completion_percentage: float
    next_lesson: int


class LearningService:
    """Coordinates lesson lookup, grading, and progression."""

    def __init__(self, catalog: LessonCatalog, progress: ProgressStore, grader: Grader) -> None:
        self.catalog = catalog
        self.progress = progress
        self.grader = grader

    @classmethod
    def create(
        cls,
        lessons_dir: Path | str | None = None,
        db_path: Path | str | None = None,
        grader_config: GraderConfig | None = None,
    ) -> LearningService:
        """Build a service from bundled or external lessons and an optional progress database."""
        if lessons_dir is None:
            catalog = LessonCatalog.from_source(load_lessons)
        else:
            catalog = LessonCatalog.from_source(lambda: load_lessons_from_dir(lessons_dir))
        store: ProgressStore = SqliteProgressStore(db_path) if db_path else MemoryProgressStore()
        return cls(catalog, store, Grader(grader_config))

    def get_lesson(self, lesson_id: int) -> Lesson:
        return self.catalog.get(lesson_id)

    def validate_code(self, lesson_id: int, code: str, user_id: str | None = None) -> ValidationOutcome:
        """Grade `code` for a lesson and, for a learner, record a full pass.

        Raises `LessonNotFound` for unknown lessons, `LessonLocked` when the learner has
        not completed the prerequisites, and `GradingError` when grading could not run.
        """
        lesson = self.catalog.get(lesson_id)
        if user_id is not None:
            current = self.progress.get(user_id)
            if not can_attempt(current, self.catalog, lesson_id):
                raise LessonLocked(lesson_id, missing_prerequisites(current, self.catalog, lesson_id))

        try:
            outcome = self.grader.validate(lesson, code)
        except GradingError as exc:
            logger.error("grading_system_failure", lesson_id=lesson_id, error=str(exc))
            raise

        if user_id is not None and outcome.all_tests_passed:
            updated = self.progress.update(user_id, record_success(lesson_id))
            logger.info(
                "progress_recorded",
                user_id=user_id,
                lesson_id=lesson_id,
                current_lesson=updated.current_lesson,
                completed=len(updated.completed_lessons),
            )
        return outcome

    def get_progress(self, user_id: str) -> ProgressReport:
        """Return progress for a learner, creating the default record on first access."""
        progress = self.progress.get(user_id)
        return ProgressReport(
            user_id=user_id,
            current_lesson=progress.current_lesson,
            completed_lessons=tuple(sorted(progress.completed_lessons)),
            completion_percentage=completion_percentage(progress, self.catalog),
            next_lesson=next_available(progress, self.catalog),
        )

    def close(self) -> None:
        """Close resources."""
        self.progress.close()
