"""Local lesson workspaces: solution scaffold, instructions, and build recipe."""

from __future__ import annotations

from pathlib import Path

from .config import ClientState
from .schemas import LessonResponse

SOLUTION_FILE = "solution.c"
README_FILE = "README.md"
MAKEFILE_FILE = "Makefile"

SOLUTION_TEMPLATE = """#include <stdio.h>

int main() {{
    // Your solution for lesson {lesson_id} goes here
    return 0;
}}
"""

MAKEFILE_TEMPLATE = """CC=gcc
CFLAGS=-Wall -Wextra

solution: solution.c
\t$(CC) $(CFLAGS) -o $@ $<

.PHONY: clean
clean:
\trm -f solution *.o *~
"""


class NoActiveLesson(RuntimeError):
    """Raised when a command needs an active lesson workspace."""

    def __init__(self) -> None:
        super().__init__("no active lesson. Run 'clearning lesson --id <number>' first")


class Workspace:
    """Materializes lessons under the learner's working directory."""

    def __init__(self, state: ClientState, state_path: Path | None = None) -> None:
        self.state = state
        self._state_path = state_path

    @property
    def working_dir(self) -> Path:
        return Path(self.state.working_dir)

    def init_workspace(self) -> Path:
        """Create the working directory."""
        self.working_dir.mkdir(parents=True, exist_ok=True)
        return self.working_dir

    def lesson_dir(self, lesson_id: int) -> Path:
        return self.working_dir / f"lesson{lesson_id}"

    def init_lesson(self, lesson: LessonResponse) -> Path:
        """Create or refresh the lesson directory and make it the active lesson.

        Existing solution and Makefile files are kept; the README is always rewritten
        from the current lesson content.
        """
        directory = self.lesson_dir(lesson.lesson_id)
        directory.mkdir(parents=True, exist_ok=True)

        solution = directory / SOLUTION_FILE
        if not solution.exists():
            solution.write_text(SOLUTION_TEMPLATE.format(lesson_id=lesson.lesson_id), encoding="utf-8")

        (directory / README_FILE).write_text(render_instructions(lesson), encoding="utf-8")

        makefile = directory / MAKEFILE_FILE
        if not makefile.exists():
            makefile.write_text(MAKEFILE_TEMPLATE, encoding="utf-8")

        self.state.current_dir = str(directory)
        self.state.last_lesson = lesson.lesson_id
        self.state.save(self._state_path)
        return directory

    def require_active(self) -> Path:
        if not self.state.current_dir:
            raise NoActiveLesson()
        return Path(self.state.current_dir)

    def next_lesson_id(self) -> int:
        self.require_active()
        return self.state.last_lesson + 1

    def read_solution(self) -> str:
        """Return the active lesson's solution source."""
        return (self.require_active() / SOLUTION_FILE).read_text(encoding="utf-8")


def render_instructions(lesson: LessonResponse) -> str:
    objectives = "".join(f"- {item}\n" for item in lesson.learning_objectives)
    return f"""=== Lesson {lesson.lesson_id}: {lesson.title} ===

Description:
{lesson.description}

Learning Objectives:
{objectives}
Example Code:
```c
{lesson.example_code.rstrip()}
```

To complete this lesson:
1. Edit {SOLUTION_FILE}
2. Run 'clearning test' to check your solution
3. Once all tests pass, you can proceed to the next lesson with 'clearning next'
"""
