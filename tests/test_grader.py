import shutil
import tempfile
import time
from dataclasses import replace
from pathlib import Path

import pytest

from clearning.content_loader import load_lessons
from clearning.grader import (
    ALL_PASSED_FEEDBACK,
    NONE_PASSED_FEEDBACK,
    TRUNCATION_MARKER,
    Grader,
    GraderConfig,
    GradingError,
    feedback_for,
)
from clearning.models import Lesson, TestCase, TestVerdict

needs_gcc = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")


def _lesson(*cases: tuple[str, str]) -> Lesson:
    return Lesson(
        id=1,
        title="Hello",
        description="",
        example_code="",
        objectives=(),
        test_cases=tuple(
            TestCase(input=stdin, expected_output=expected, description=f"case {index}")
            for index, (stdin, expected) in enumerate(cases, start=1)
        ),
        prerequisites=frozenset(),
    )


HELLO = _lesson(("", "Hello\n"))


def test_passing_submission(fake_grader_config: GraderConfig) -> None:
    outcome = Grader(fake_grader_config).validate(HELLO, 'print("Hello")\n')
    assert outcome.all_tests_passed is True
    assert outcome.can_proceed is True
    assert outcome.compiled is True
    assert outcome.feedback == ALL_PASSED_FEEDBACK
    assert [verdict.actual_output for verdict in outcome.verdicts] == ["Hello\n"]


def test_wrong_output_fails_every_case(fake_grader_config: GraderConfig) -> None:
    outcome = Grader(fake_grader_config).validate(HELLO, 'print("Goodbye")\n')
    assert outcome.all_tests_passed is False
    assert outcome.can_proceed is False
    assert outcome.feedback == NONE_PASSED_FEEDBACK
    verdict = outcome.verdicts[0]
    assert verdict.passed is False
    assert verdict.expected_output == "Hello\n"
    assert verdict.actual_output == "Goodbye\n"


def test_partial_failure_feedback(fake_grader_config: GraderConfig) -> None:
    lesson = _lesson(("3 4", "Sum: 7\n"), ("2 2", "Sum: 5\n"))
    source = "a, b = input().split()\nprint(f'Sum: {int(a) + int(b)}')\n"
    outcome = Grader(fake_grader_config).validate(lesson, source)
    assert [verdict.passed for verdict in outcome.verdicts] == [True, False]
    assert outcome.failed_count == 1
    assert outcome.feedback == "1 out of 2 tests failed. Check the test results and try again."


def test_comparison_ignores_surrounding_whitespace(fake_grader_config: GraderConfig) -> None:
    outcome = Grader(fake_grader_config).validate(HELLO, 'print("\\n  Hello  \\n")\n')
    assert outcome.all_tests_passed is True


def test_nonzero_exit_fails_case(fake_grader_config: GraderConfig) -> None:
    outcome = Grader(fake_grader_config).validate(HELLO, 'print("Hello")\nraise SystemExit(3)\n')
    assert outcome.all_tests_passed is False
    assert outcome.verdicts[0].actual_output == "Hello\n"


def test_stderr_is_part_of_actual_output(fake_grader_config: GraderConfig) -> None:
    source = 'import sys\nsys.stderr.write("oops\\n")\nsys.stderr.flush()\nprint("Hello")\n'
    outcome = Grader(fake_grader_config).validate(HELLO, source)
    assert "oops" in outcome.verdicts[0].actual_output
    assert outcome.all_tests_passed is False


def test_stdin_is_fed_to_program(fake_grader_config: GraderConfig) -> None:
    lesson = _lesson(("Ada\n", "Hi Ada\n"))
    outcome = Grader(fake_grader_config).validate(lesson, 'print("Hi", input())\n')
    assert outcome.all_tests_passed is True


def test_runaway_program_times_out(fake_grader_config: GraderConfig) -> None:
    config = replace(fake_grader_config, run_timeout=0.5)
    outcome = Grader(config).validate(HELLO, "import time\ntime.sleep(30)\n")
    verdict = outcome.verdicts[0]
    assert verdict.timed_out is True
    assert verdict.passed is False
    assert outcome.all_tests_passed is False


def test_forked_background_process_is_killed_after_run(fake_grader_config: GraderConfig, tmp_path: Path) -> None:
    marker = tmp_path / "still-running"
    source = (
        "import os, time\n"
        "if os.fork() == 0:\n"
        "    for fd in (0, 1, 2):\n"
        "        os.close(fd)\n"
        "    time.sleep(1)\n"
        f"    open({str(marker)!r}, \"w\").close()\n"
        "    os._exit(0)\n"
        "print(\"Hello\")\n"
    )
    outcome = Grader(fake_grader_config).validate(HELLO, source)
    assert outcome.all_tests_passed is True
    time.sleep(2)
    assert not marker.exists()


def test_program_file_writes_are_capped(fake_grader_config: GraderConfig) -> None:
    config = replace(fake_grader_config, max_output_bytes=1024)
    source = (
        "try:\n"
        "    with open(\"big.bin\", \"wb\") as handle:\n"
        "        handle.write(b\"x\" * 1_000_000)\n"
        "except OSError:\n"
        "    print(\"Hello\")\n"
    )
    outcome = Grader(config).validate(HELLO, source)
    assert outcome.all_tests_passed is True


def test_output_is_truncated(fake_grader_config: GraderConfig) -> None:
    config = replace(fake_grader_config, max_output_bytes=16)
    outcome = Grader(config).validate(HELLO, 'print("x" * 1000)\n')
    actual = outcome.verdicts[0].actual_output
    assert actual == "x" * 16 + TRUNCATION_MARKER
    assert outcome.verdicts[0].passed is False


def test_compile_failure_reports_diagnostics(fake_grader_config: GraderConfig) -> None:
    outcome = Grader(fake_grader_config).validate(HELLO, "def broken(:\n")
    assert outcome.compiled is False
    assert outcome.all_tests_passed is False
    assert outcome.can_proceed is False
    assert outcome.verdicts == ()
    assert "error" in outcome.feedback


def test_missing_compiler_raises_grading_error() -> None:
    config = GraderConfig(compiler=("clearning-no-such-compiler",))
    with pytest.raises(GradingError, match="failed to run compiler"):
        Grader(config).validate(HELLO, "int main() { return 0; }\n")


def test_grading_is_deterministic(fake_grader_config: GraderConfig) -> None:
    grader = Grader(fake_grader_config)
    first = grader.validate(HELLO, 'print("Hello")\n')
    second = grader.validate(HELLO, 'print("Hello")\n')
    assert first == second


def test_scratch_directory_is_removed(
    fake_grader_config: GraderConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    grader = Grader(fake_grader_config)
    grader.validate(HELLO, 'print("Hello")\n')
    grader.validate(HELLO, "def broken(:\n")
    assert list(scratch.iterdir()) == []


def test_feedback_for_summaries() -> None:
    passed = TestVerdict(description="a", passed=True, expected_output="", actual_output="")
    failed = TestVerdict(description="b", passed=False, expected_output="x", actual_output="y")
    assert feedback_for([passed, passed]) == ALL_PASSED_FEEDBACK
    assert feedback_for([failed]) == NONE_PASSED_FEEDBACK
    assert feedback_for([failed, passed, passed]).startswith("1 out of 3 tests failed.")


@needs_gcc
def test_bundled_examples_pass_their_own_tests() -> None:
    grader = Grader()
    for lesson in load_lessons().values():
        outcome = grader.validate(lesson, lesson.example_code)
        assert outcome.all_tests_passed, (lesson.id, outcome.feedback)


@needs_gcc
def test_c_syntax_error_fails_to_compile() -> None:
    outcome = Grader().validate(HELLO, "int main() { return 0 }\n")
    assert outcome.compiled is False
    assert "error" in outcome.feedback
