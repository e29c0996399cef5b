"""Prerequisite gating and progression rules."""

from __future__ import annotations

from .catalog import LessonCatalog
from .models import UserProgress
from .progress import Transition

FIRST_LESSON = 1


def missing_prerequisites(progress: UserProgress, catalog: LessonCatalog, lesson_id: int) -> list[int]:
    """Return prerequisite ids of `lesson_id` the learner has not completed yet."""
    lesson = catalog.get(lesson_id)
    return sorted(item for item in lesson.prerequisites if not progress.is_completed(item))


def can_attempt(progress: UserProgress, catalog: LessonCatalog, lesson_id: int) -> bool:
    """Return whether every prerequisite of the lesson is completed."""
    if lesson_id not in catalog:
        return False
    return not missing_prerequisites(progress, catalog, lesson_id)


def record_success(lesson_id: int) -> Transition:
    """Return a progress transition that marks `lesson_id` completed.

    The transition is idempotent and only advances the current lesson pointer when
    `lesson_id` is the current lesson. The advanced pointer is the numeric successor
    and may not exist in the catalog.
    """

    def transition(progress: UserProgress) -> UserProgress:
        return progress.with_completed(lesson_id)

    return transition


def next_available(progress: UserProgress | None, catalog: LessonCatalog) -> int:
    """Return the first attemptable lesson at or after the learner's current lesson.

    Scanning stops at the first id missing from the catalog; the learner's current
    lesson is returned in that case, even when it is not itself attemptable.
    """
    if progress is None:
        return FIRST_LESSON
    candidate = progress.current_lesson
    while True:
        if candidate not in catalog:
            return progress.current_lesson
        if can_attempt(progress, catalog, candidate):
            return candidate
        candidate += 1


def completion_percentage(progress: UserProgress, catalog: LessonCatalog) -> float:
    """Return completed lessons as a percentage of the catalog size."""
    if len(catalog) == 0:
        return 0.0
    return len(progress.completed_lessons) / len(catalog) * 100
