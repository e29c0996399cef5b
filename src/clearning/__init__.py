"""C learning platform: lessons, grading server, and learner CLI."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]

DIST_NAME = "c-learning"


def _source_version() -> str | None:
    """Read [project].version from a checkout's pyproject.toml, if one is nearby."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.is_file():
            continue
        with pyproject.open("rb") as handle:
            project = tomllib.load(handle).get("project", {})
        if project.get("name") == DIST_NAME:
            return project.get("version")
    return None


def _resolve_version() -> str:
    found = _source_version()
    if found:
        return found
    try:
        return version(DIST_NAME)
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _resolve_version()
