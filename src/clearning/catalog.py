"""Read-only lesson catalog built once from a lesson source."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType

import structlog

from .models import Lesson

LessonSource = Callable[[], Mapping[int, Lesson]]

logger = structlog.get_logger()


class LessonNotFound(KeyError):
    """Raised when a lesson id is absent from the catalog."""

    def __init__(self, lesson_id: int) -> None:
        super().__init__(lesson_id)
        self.lesson_id = lesson_id

    def __str__(self) -> str:
        return f"lesson {self.lesson_id} not found"


class LessonCatalog:
    """Immutable lesson lookup keyed by lesson id."""

    def __init__(self, lessons: Mapping[int, Lesson]) -> None:
        self._lessons = MappingProxyType(dict(sorted(lessons.items())))

    @classmethod
    def from_source(cls, source: LessonSource) -> LessonCatalog:
        """Build the catalog from a lesson source; any load error propagates."""
        catalog = cls(source())
        logger.info("lessons_loaded", count=len(catalog), lesson_ids=catalog.ids())
        return catalog

    def get(self, lesson_id: int) -> Lesson:
        try:
            return self._lessons[lesson_id]
        except KeyError:
            raise LessonNotFound(lesson_id) from None

    def ids(self) -> list[int]:
        return list(self._lessons)

    def __contains__(self, lesson_id: object) -> bool:
        return lesson_id in self._lessons

    def __len__(self) -> int:
        return len(self._lessons)

    def __iter__(self) -> Iterator[Lesson]:
        return iter(self._lessons.values())
