"""Load lesson content from lesson directory trees."""

from __future__ import annotations

import json
from collections.abc import Iterator
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import structlog

from .models import Lesson, TestCase

LESSON_FILE = "lesson.json"
EXAMPLE_FILE = "example.c"
TESTS_FILE = "tests.json"

logger = structlog.get_logger()


def _test_case_from_dict(lesson_id: int, raw: Any) -> TestCase:
    """Build a test case from raw JSON content."""
    if not isinstance(raw, dict):
        raise ValueError(f"Lesson {lesson_id} has a test case that is not an object.")
    if "expected_output" not in raw:
        raise ValueError(f"Lesson {lesson_id} has a test case without expected_output.")
    return TestCase(
        input=str(raw.get("input", "")),
        expected_output=str(raw["expected_output"]),
        description=str(raw.get("description", "")),
    )


def _lesson_from_dir(directory: Traversable) -> Lesson:
    """Build a lesson from a directory holding lesson.json, example.c and tests.json."""
    raw = _read_json(directory.joinpath(LESSON_FILE))
    if not isinstance(raw, dict):
        raise ValueError(f"{_describe(directory.joinpath(LESSON_FILE))} must contain a JSON object.")

    lesson_id = _lesson_id(raw.get("id"), directory)
    if not raw.get("title"):
        raise ValueError(f"{_describe(directory.joinpath(LESSON_FILE))} has no title.")
    example_code = _read_paired(directory, EXAMPLE_FILE, lesson_id)
    raw_tests = _read_json(directory.joinpath(TESTS_FILE), lesson_id)
    if not isinstance(raw_tests, list):
        raise ValueError(f"Test cases for lesson {lesson_id} must be a JSON array.")
    test_cases = tuple(_test_case_from_dict(lesson_id, item) for item in raw_tests)
    if not test_cases:
        raise ValueError(f"Lesson {lesson_id} has no test cases.")

    return Lesson(
        id=lesson_id,
        title=str(raw["title"]),
        description=str(raw.get("description", "")),
        example_code=example_code,
        objectives=tuple(str(item) for item in raw.get("learning_objectives", [])),
        test_cases=test_cases,
        prerequisites=frozenset(_lesson_id(item, directory) for item in raw.get("prerequisites", [])),
    )


def load_lessons() -> dict[int, Lesson]:
    """Load the lessons bundled with the package."""
    return _load_tree(resources.files(__package__).joinpath("lessons"))


def load_lessons_from_dir(path: Path | str) -> dict[int, Lesson]:
    """Load lessons from an external directory tree."""
    root = Path(path)
    if not root.is_dir():
        raise ValueError(f"Lesson directory not found: {root}")
    return _load_tree(root)


def _load_tree(root: Traversable) -> dict[int, Lesson]:
    lessons: dict[int, Lesson] = {}
    for directory in _lesson_dirs(root):
        lesson = _lesson_from_dir(directory)
        if lesson.id in lessons:
            raise ValueError(f"Duplicate lesson id: {lesson.id}")
        lessons[lesson.id] = lesson
        logger.debug("lesson_loaded", lesson_id=lesson.id, title=lesson.title)
    _validate_prerequisites(lessons)
    return dict(sorted(lessons.items()))


def _lesson_dirs(root: Traversable) -> Iterator[Traversable]:
    """Yield every directory below `root` that holds a lesson descriptor, in name order."""
    if root.joinpath(LESSON_FILE).is_file():
        yield root
    for entry in sorted(root.iterdir(), key=lambda item: item.name):
        if entry.is_dir():
            yield from _lesson_dirs(entry)


def _validate_prerequisites(lessons: dict[int, Lesson]) -> None:
    """Validate prerequisites exist and the prerequisite graph has no cycles."""
    for lesson in lessons.values():
        for prerequisite in sorted(lesson.prerequisites):
            if prerequisite not in lessons:
                raise ValueError(f"Lesson {lesson.id} has unknown prerequisite {prerequisite}.")

    visiting: set[int] = set()
    visited: set[int] = set()

    def visit(lesson_id: int, path: list[int]) -> None:
        if lesson_id in visited:
            return
        if lesson_id in visiting:
            cycle = path[path.index(lesson_id) :] + [lesson_id]
            raise ValueError(f"Circular lesson prerequisites detected: {' -> '.join(str(item) for item in cycle)}")
        visiting.add(lesson_id)
        path.append(lesson_id)
        for prerequisite in sorted(lessons[lesson_id].prerequisites):
            visit(prerequisite, path)
        path.pop()
        visiting.remove(lesson_id)
        visited.add(lesson_id)

    for lesson_id in lessons:
        visit(lesson_id, [])


def _lesson_id(value: object, directory: Traversable) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        location = _describe(directory)
        raise ValueError(f"Lesson in {location} has invalid lesson id {value!r}; expected a positive integer.")
    return value


def _read_paired(directory: Traversable, name: str, lesson_id: int) -> str:
    entry = directory.joinpath(name)
    if not entry.is_file():
        raise ValueError(f"Lesson {lesson_id} is missing {name} in {_describe(directory)}.")
    return entry.read_text(encoding="utf-8")


def _read_json(entry: Traversable, lesson_id: int | None = None) -> Any:
    if not entry.is_file():
        owner = f"Lesson {lesson_id}" if lesson_id is not None else "Lesson"
        raise ValueError(f"{owner} is missing {entry.name}.")
    try:
        return json.loads(entry.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Could not parse {_describe(entry)}: {exc}") from exc


def _describe(entry: Traversable) -> str:
    return str(entry) if isinstance(entry, Path) else entry.name
