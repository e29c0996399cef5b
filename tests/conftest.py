from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from clearning.grader import GraderConfig  # noqa: E402

# Stands in for a C compiler: "compiles" Python source and emits a shell launcher.
FAKE_COMPILER = """\
import os
import shutil
import sys

args = sys.argv[1:]
output = args[args.index("-o") + 1]
source = next(arg for arg in args if arg.endswith(".c"))
with open(source, encoding="utf-8") as handle:
    text = handle.read()
try:
    compile(text, source, "exec")
except SyntaxError as exc:
    print(f"{source}:{exc.lineno}: error: {exc.msg}")
    sys.exit(1)
program = output + ".py"
shutil.copyfile(source, program)
with open(output, "w", encoding="utf-8") as handle:
    handle.write(f'#!/bin/sh\\nexec "{sys.executable}" "{program}"\\n')
os.chmod(output, 0o755)
"""


def write_lesson(
    root: Path,
    lesson_id: int,
    *,
    title: str | None = None,
    prerequisites: list[int] | None = None,
    tests: list[dict[str, str]] | None = None,
    example: str | None = "int main() { return 0; }\n",
    folder: str | None = None,
) -> Path:
    """Write one lesson directory in the on-disk lesson format."""
    directory = root / (folder or f"{lesson_id:02d}_lesson")
    directory.mkdir(parents=True, exist_ok=True)
    descriptor = {
        "id": lesson_id,
        "title": title or f"Lesson {lesson_id}",
        "description": f"Description {lesson_id}",
        "learning_objectives": [f"Objective {lesson_id}"],
        "prerequisites": prerequisites or [],
    }
    (directory / "lesson.json").write_text(json.dumps(descriptor), encoding="utf-8")
    if example is not None:
        (directory / "example.c").write_text(example, encoding="utf-8")
    if tests is None:
        tests = [{"input": "", "expected_output": "Hello\n", "description": "Prints Hello"}]
    (directory / "tests.json").write_text(json.dumps(tests), encoding="utf-8")
    return directory


@pytest.fixture
def lessons_dir(tmp_path: Path) -> Path:
    """Three lessons: 1, 2 (requires 1), 3 (requires 2)."""
    root = tmp_path / "lessons"
    write_lesson(root, 1)
    write_lesson(root, 2, prerequisites=[1])
    write_lesson(root, 3, prerequisites=[2])
    return root


@pytest.fixture
def fake_grader_config(tmp_path: Path) -> GraderConfig:
    if os.name != "posix":
        pytest.skip("fake compiler launcher needs /bin/sh")
    script = tmp_path / "fake_cc.py"
    script.write_text(FAKE_COMPILER, encoding="utf-8")
    return GraderConfig(compiler=(sys.executable, str(script)), compiler_flags=(), run_timeout=5.0)
