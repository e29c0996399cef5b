"""Server settings from the environment and persisted client state."""

from __future__ import annotations

import json
import os
import shlex
from dataclasses import asdict, dataclass, field
from pathlib import Path
from uuid import uuid4

from dotenv import find_dotenv, load_dotenv

from .grader import GraderConfig

DEFAULT_SERVER_URL = "http://localhost:8080"
CONFIG_ENV = "CLEARNING_CONFIG"


@dataclass(frozen=True)
class ServerSettings:
    """Runtime settings for the grading server."""

    host: str = "127.0.0.1"
    port: int = 8080
    lessons_dir: Path | None = None
    db_path: Path | None = None
    log_format: str = "json"
    grader: GraderConfig = field(default_factory=GraderConfig)

    @classmethod
    def from_env(cls) -> ServerSettings:
        """Read settings from `.env` and `CLEARNING_*` environment variables."""
        load_dotenv(find_dotenv(usecwd=True))
        defaults = GraderConfig()
        lessons_dir = os.getenv("CLEARNING_LESSONS_DIR")
        db_path = os.getenv("CLEARNING_DB")
        compiler = os.getenv("CLEARNING_CC")
        flags = os.getenv("CLEARNING_CFLAGS")
        grader = GraderConfig(
            compiler=tuple(shlex.split(compiler)) if compiler else defaults.compiler,
            compiler_flags=tuple(shlex.split(flags)) if flags is not None else defaults.compiler_flags,
            compile_timeout=float(os.getenv("CLEARNING_COMPILE_TIMEOUT", defaults.compile_timeout)),
            run_timeout=float(os.getenv("CLEARNING_RUN_TIMEOUT", defaults.run_timeout)),
            max_output_bytes=int(os.getenv("CLEARNING_MAX_OUTPUT", defaults.max_output_bytes)),
        )
        return cls(
            host=os.getenv("CLEARNING_HOST", cls.host),
            port=int(os.getenv("CLEARNING_PORT", cls.port)),
            lessons_dir=Path(lessons_dir) if lessons_dir else None,
            db_path=Path(db_path) if db_path else None,
            log_format=os.getenv("CLEARNING_LOG_FORMAT", cls.log_format),
            grader=grader,
        )


def server_url() -> str:
    """Return the server base URL for CLI commands."""
    load_dotenv(find_dotenv(usecwd=True))
    return os.getenv("CLEARNING_SERVER_URL", DEFAULT_SERVER_URL)


def default_state_path() -> Path:
    """Return the client state file location."""
    override = os.getenv(CONFIG_ENV)
    if override:
        return Path(override)
    return Path.home() / ".c-learning" / "config.json"


@dataclass
class ClientState:
    """Learner identity and active lesson tracked on the client machine."""

    user_id: str
    last_lesson: int = 1
    working_dir: str = ""
    current_dir: str = ""

    @classmethod
    def load(cls, path: Path | None = None) -> ClientState:
        """Load state from `path`, creating and saving a fresh state if it does not exist."""
        target = path or default_state_path()
        if not target.exists():
            state = cls(user_id=str(uuid4()), working_dir=str(Path.home() / "c-learning"))
            state.save(target)
            return state
        raw: object = json.loads(target.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Client state file {target} must contain a JSON object.")
        user_id = str(raw.get("user_id") or "")
        if not user_id:
            raise ValueError(f"Client state file {target} has no user_id.")
        last_lesson = raw.get("last_lesson", 1)
        if isinstance(last_lesson, bool) or not isinstance(last_lesson, int) or last_lesson < 1:
            raise ValueError(f"Client state file {target} has invalid last_lesson {last_lesson!r}.")
        return cls(
            user_id=user_id,
            last_lesson=last_lesson,
            working_dir=str(raw.get("working_dir") or Path.home() / "c-learning"),
            current_dir=str(raw.get("current_dir", "")),
        )

    def save(self, path: Path | None = None) -> None:
        target = path or default_state_path()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
