"""CLI entrypoint for the C learning client and server."""

from __future__ import annotations

import argparse
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

from .client import ClientError, LearningClient
from .config import ClientState, ServerSettings, server_url
from .schemas import ValidationResponse
from .workspace import NoActiveLesson, Workspace

PrintFn = Callable[[str], None]
PASS_MARK = "✓"
FAIL_MARK = "✗"


def _client(base_url: str) -> LearningClient:
    """Create the service client."""
    return LearningClient(base_url)


def _workspace() -> Workspace:
    """Load client state and wrap it in a workspace."""
    return Workspace(ClientState.load())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clearning", description="Interactive C programming lessons")
    parser.add_argument("--server", default=None, help="Learning service URL")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the grading server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--lessons-dir", type=Path, default=None, help="Load lessons from this directory")
    serve.add_argument("--db", type=Path, default=None, help="Persist learner progress in this SQLite file")

    commands.add_parser("init", help="Create the local workspace directory")

    lesson = commands.add_parser("lesson", help="Set up a lesson workspace")
    lesson.add_argument("--id", type=int, default=1, dest="lesson_id", help="Lesson ID to start")

    commands.add_parser("test", help="Grade the active lesson's solution")
    commands.add_parser("next", help="Move to the next lesson")

    submit = commands.add_parser("submit", help="Grade a source file for a lesson")
    submit.add_argument("--id", type=int, default=1, dest="lesson_id", help="Lesson ID to submit for")
    submit.add_argument("--file", type=Path, required=True, help="Path to the C source file")

    commands.add_parser("progress", help="Show learner progress")
    return parser


def run(argv: list[str] | None = None, print_fn: PrintFn = print) -> int:
    """Run the CLI application."""
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        return _serve(args)

    try:
        workspace = _workspace()
    except (OSError, ValueError) as exc:
        print_fn(f"Error: could not load client state: {exc}")
        return 1
    client = _client(args.server or server_url())
    try:
        if args.command == "init":
            _init_flow(workspace, print_fn)
        elif args.command == "lesson":
            _lesson_flow(client, workspace, args.lesson_id, print_fn)
        elif args.command == "test":
            _test_flow(client, workspace, print_fn)
        elif args.command == "next":
            _lesson_flow(client, workspace, workspace.next_lesson_id(), print_fn)
        elif args.command == "submit":
            _submit_flow(client, workspace, args.lesson_id, args.file, print_fn)
        elif args.command == "progress":
            _progress_flow(client, workspace, print_fn)
    except (ClientError, NoActiveLesson, OSError, ValueError) as exc:
        print_fn(f"Error: {exc}")
        return 1
    finally:
        client.close()
    return 0


def _serve(args: argparse.Namespace) -> int:
    from .server import serve

    settings = ServerSettings.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "lessons_dir": args.lessons_dir,
        "db_path": args.db,
    }
    settings = replace(settings, **{key: value for key, value in overrides.items() if value is not None})
    serve(settings)
    return 0


def _init_flow(workspace: Workspace, print_fn: PrintFn) -> None:
    path = workspace.init_workspace()
    print_fn(f"Initialized workspace at: {path}")
    print_fn("Run 'clearning lesson --id 1' to start your first lesson")


def _lesson_flow(client: LearningClient, workspace: Workspace, lesson_id: int, print_fn: PrintFn) -> None:
    """Fetch a lesson and materialize its workspace."""
    lesson = client.get_lesson(lesson_id)
    directory = workspace.init_lesson(lesson)
    print_fn(f"Initialized Lesson {lesson.lesson_id}: {lesson.title}")
    print_fn(f"Workspace: {directory}")
    print_fn("Edit solution.c and run 'clearning test' to check your solution")


def _test_flow(client: LearningClient, workspace: Workspace, print_fn: PrintFn) -> None:
    """Grade the active lesson's solution and record progress on a full pass."""
    code = workspace.read_solution()
    lesson_id = workspace.state.last_lesson
    result = client.validate_code(lesson_id, code, workspace.state.user_id)
    _print_results(lesson_id, result, print_fn)
    if result.can_proceed:
        print_fn("You can now proceed to the next lesson with 'clearning next'")


def _submit_flow(
    client: LearningClient, workspace: Workspace, lesson_id: int, source: Path, print_fn: PrintFn
) -> None:
    code = source.read_text(encoding="utf-8")
    result = client.validate_code(lesson_id, code, workspace.state.user_id)
    _print_results(lesson_id, result, print_fn)


def _progress_flow(client: LearningClient, workspace: Workspace, print_fn: PrintFn) -> None:
    progress = client.get_progress(workspace.state.user_id)
    completed = ", ".join(str(item) for item in progress.completed_lessons) if progress.completed_lessons else "none"
    print_fn("\n=== Your Progress ===")
    print_fn(f"Current Lesson: {progress.current_lesson}")
    print_fn(f"Next Available Lesson: {progress.next_lesson}")
    print_fn(f"Completion: {progress.completion_percentage:.1f}%")
    print_fn(f"Completed Lessons: {completed}")


def _print_results(lesson_id: int, result: ValidationResponse, print_fn: PrintFn) -> None:
    """Print a pass/fail table with expected and actual output for failing cases."""
    print_fn(f"\n=== Test Results for Lesson {lesson_id} ===\n")
    if not result.test_results and not result.is_valid:
        print_fn("Compilation failed:")
        print_fn(result.feedback)
        return

    width = max(len("Test"), max((len(item.test_case_description) for item in result.test_results), default=0))
    header = f"   {'Test':<{width}} Result"
    print_fn(header)
    print_fn("-" * len(header))
    for item in result.test_results:
        mark = PASS_MARK if item.passed else FAIL_MARK
        status = "passed" if item.passed else ("timed out" if item.timed_out else "failed")
        print_fn(f"{mark}  {item.test_case_description:<{width}} {status}")
        if not item.passed:
            print_fn(f"     Expected: {item.expected_output.rstrip()}")
            print_fn(f"     Got:      {item.actual_output.rstrip()}")

    print_fn("")
    print_fn(result.feedback)
    if result.is_valid:
        print_fn(f"Congratulations! All tests passed for Lesson {lesson_id}!")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
