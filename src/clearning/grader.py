"""Compile submitted C source and grade it against lesson test cases."""

from __future__ import annotations

import os
import signal
import subprocess
import tempfile
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from .models import Lesson, TestCase, TestVerdict, ValidationOutcome

SOURCE_NAME = "solution.c"
EXECUTABLE_NAME = "solution"
TRUNCATION_MARKER = "\n[output truncated]"

ALL_PASSED_FEEDBACK = "Great job! All tests passed successfully."
NONE_PASSED_FEEDBACK = "None of the tests passed. Review your code and try again."

logger = structlog.get_logger()


class GradingError(RuntimeError):
    """Grading could not run: scratch space, toolchain, or process spawn failed."""


@dataclass(frozen=True)
class GraderConfig:
    """Toolchain command and execution limits."""

    compiler: tuple[str, ...] = ("gcc",)
    compiler_flags: tuple[str, ...] = ("-Wall", "-Werror")
    compile_timeout: float = 30.0
    run_timeout: float = 5.0
    max_output_bytes: int = 64 * 1024


@dataclass(frozen=True)
class _RunResult:
    output: str
    returncode: int | None
    timed_out: bool


class Grader:
    """Compiles one submission per call in a disposable scratch directory."""

    def __init__(self, config: GraderConfig | None = None) -> None:
        self.config = config or GraderConfig()

    def validate(self, lesson: Lesson, source_code: str) -> ValidationOutcome:
        """Compile `source_code` and run it against every test case of `lesson`.

        Compile failures and failing test cases are reported in the outcome.
        `GradingError` is raised only when grading itself could not run.
        """
        started = time.monotonic()
        log = logger.bind(lesson_id=lesson.id)
        log.info("grading_started", test_cases=len(lesson.test_cases))
        try:
            scratch = tempfile.TemporaryDirectory(prefix="c-learning-")
        except OSError as exc:
            raise GradingError(f"failed to create temp directory: {exc}") from exc

        with scratch as scratch_dir:
            workdir = Path(scratch_dir)
            executable, diagnostics = self._compile(workdir, source_code)
            if executable is None:
                log.info("compile_failed", diagnostics_length=len(diagnostics))
                return ValidationOutcome(
                    all_tests_passed=False,
                    verdicts=(),
                    feedback=diagnostics,
                    can_proceed=False,
                    compiled=False,
                )

            verdicts = tuple(
                self._run_case(workdir, executable, index, case) for index, case in enumerate(lesson.test_cases)
            )

        all_passed = all(verdict.passed for verdict in verdicts)
        outcome = ValidationOutcome(
            all_tests_passed=all_passed,
            verdicts=verdicts,
            feedback=feedback_for(verdicts),
            can_proceed=all_passed,
        )
        log.info(
            "grading_completed",
            passed=len(verdicts) - outcome.failed_count,
            failed=outcome.failed_count,
            duration=round(time.monotonic() - started, 3),
        )
        return outcome

    def _compile(self, workdir: Path, source_code: str) -> tuple[Path | None, str]:
        """Return (executable, "") on success or (None, diagnostics) on a compile failure."""
        source = workdir / SOURCE_NAME
        executable = workdir / EXECUTABLE_NAME
        try:
            source.write_text(source_code, encoding="utf-8")
        except OSError as exc:
            raise GradingError(f"failed to write source file: {exc}") from exc

        command = [*self.config.compiler, "-o", str(executable), str(source), *self.config.compiler_flags]
        try:
            completed = subprocess.run(
                command,
                cwd=workdir,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.config.compile_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return None, f"compilation timed out after {self.config.compile_timeout:g} seconds"
        except OSError as exc:
            raise GradingError(f"failed to run compiler {self.config.compiler[0]!r}: {exc}") from exc

        if completed.returncode != 0:
            return None, _decode(completed.stdout)
        return executable, ""

    def _run_case(self, workdir: Path, executable: Path, index: int, case: TestCase) -> TestVerdict:
        result = self._execute(workdir, executable, index, case.input)
        if result.timed_out:
            logger.info("test_case_timed_out", case=index, timeout=self.config.run_timeout)
        passed = (
            not result.timed_out
            and result.returncode == 0
            and result.output.strip() == case.expected_output.strip()
        )
        return TestVerdict(
            description=case.description,
            passed=passed,
            expected_output=case.expected_output,
            actual_output=result.output,
            timed_out=result.timed_out,
        )

    def _execute(self, workdir: Path, executable: Path, index: int, stdin_text: str) -> _RunResult:
        """Run the executable once, capturing combined output into a bounded file."""
        output_path = workdir / f"output-{index}.txt"
        timed_out = False
        try:
            with output_path.open("w+b") as sink:
                try:
                    process = subprocess.Popen(
                        [str(executable)],
                        cwd=workdir,
                        stdin=subprocess.PIPE,
                        stdout=sink,
                        stderr=subprocess.STDOUT,
                        start_new_session=True,
                        preexec_fn=self._limit_output if os.name == "posix" else None,
                    )
                except OSError as exc:
                    raise GradingError(f"failed to start compiled program: {exc}") from exc
                try:
                    process.communicate(input=stdin_text.encode("utf-8"), timeout=self.config.run_timeout)
                except subprocess.TimeoutExpired:
                    timed_out = True
                finally:
                    # background children the program forked must not outlive the run
                    _kill(process)
                    process.wait()
                sink.seek(0)
                data = sink.read(self.config.max_output_bytes + 1)
        except OSError as exc:
            raise GradingError(f"failed to capture program output: {exc}") from exc

        output = _decode(data[: self.config.max_output_bytes])
        if len(data) > self.config.max_output_bytes:
            output += TRUNCATION_MARKER
        return _RunResult(output=output, returncode=None if timed_out else process.returncode, timed_out=timed_out)

    def _limit_output(self) -> None:
        """Cap the size of files the child writes, so output cannot grow past the read-back limit."""
        import resource

        limit = self.config.max_output_bytes + 1
        resource.setrlimit(resource.RLIMIT_FSIZE, (limit, limit))


def feedback_for(verdicts: Sequence[TestVerdict]) -> str:
    """Return the human-readable summary for a set of verdicts."""
    failed = sum(1 for verdict in verdicts if not verdict.passed)
    if failed == 0:
        return ALL_PASSED_FEEDBACK
    if failed == len(verdicts):
        return NONE_PASSED_FEEDBACK
    return f"{failed} out of {len(verdicts)} tests failed. Check the test results and try again."


def _kill(process: subprocess.Popen[bytes]) -> None:
    """Kill the process and everything it spawned in its session."""
    if os.name == "posix":
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    else:  # pragma: no cover
        process.kill()


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")
