from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from dependency_engine.core.errors import TaskLoadError


def load_tasks(path: str) -> dict[str, Any]:
    """Load a YAML/JSON task file.

    Returns a dict with keys: tasks, links, project_start.
    Does not coerce types; validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise TaskLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    if suffix not in {".yaml", ".yml", ".json"}:
        raise TaskLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message="supported formats are .yaml/.yml and .json",
            file=str(p),
        )

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:  # pragma: no cover
        raise TaskLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    fmt = "yaml" if suffix in {".yaml", ".yml"} else "json"
    return load_tasks_text(raw_text, fmt=fmt, file=str(p))


def load_tasks_text(text: str, fmt: str = "json", file: Optional[str] = None) -> dict[str, Any]:
    """Parse task input already in memory (stdin for the CLI)."""

    try:
        if fmt == "yaml":
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        code = "E_YAML_PARSE" if fmt == "yaml" else "E_JSON_PARSE"
        raise TaskLoadError(code=code, message=str(e), file=file) from e

    # A bare list is shorthand for {"tasks": [...]}.
    if isinstance(data, list):
        data = {"tasks": data}

    if not isinstance(data, dict):
        raise TaskLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a task list or a mapping with 'tasks'",
            file=file,
        )

    normalized: dict[str, Any] = {
        "tasks": data.get("tasks"),
        "links": data.get("links", []),
        "project_start": data.get("project_start"),
    }
    normalized["__file__"] = file
    return normalized
