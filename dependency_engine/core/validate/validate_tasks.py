from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Any, Iterable, Optional, cast

from dependency_engine.core.errors import TaskValidationError
from dependency_engine.core.model import (
    LINK_TYPES,
    TASK_STATUSES,
    DependencyLink,
    LinkType,
    Task,
    TaskRef,
    TaskSnapshot,
    TaskStatus,
)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _task_id(v: Any) -> Any:
    """Integer ids are accepted and compared as strings."""
    return str(v) if _is_int(v) else v


def normalize_status(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower().replace("-", "_").replace(" ", "_")
    return v


def validate_statuses(values: Iterable[str], path: str = "status") -> tuple[list[str], list[TaskValidationError]]:
    """Normalize status filter values; unknown ones are E_INVALID_ENUM errors."""
    out: list[str] = []
    errors: list[TaskValidationError] = []
    for v in values:
        status = normalize_status(v)
        if status not in TASK_STATUSES:
            errors.append(
                TaskValidationError(
                    code="E_INVALID_ENUM",
                    message=f"unknown status: {v} (choose from: {', '.join(TASK_STATUSES)})",
                    path=path,
                )
            )
            continue
        out.append(status)
    return out, errors


def _parse_date(v: Any) -> Optional[date]:
    """Accept ISO dates, ISO datetimes (the time is dropped) and the date objects YAML produces."""
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        s = v.strip()
        try:
            if len(s) == 10:
                return date.fromisoformat(s)
            if len(s) > 10 and s[10] in "T ":
                return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def validate_tasks(
    raw: dict[str, Any],
) -> tuple[Optional[TaskSnapshot], list[TaskValidationError]]:
    """Validate loaded task input.

    Returns (snapshot, errors). Snapshot is None when errors exist.
    References to unknown task ids are not errors here: the graph builder
    drops them and records a diagnostic.
    """

    file = cast(Optional[str], raw.get("__file__"))
    errors: list[TaskValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(TaskValidationError(code=code, message=message, file=file, path=path))

    tasks_raw = raw.get("tasks")
    if not isinstance(tasks_raw, list):
        err("E_REQUIRED_FIELD", "tasks is required and must be an array", "tasks")
        return None, _sorted(errors)

    project_start: Optional[date] = None
    if raw.get("project_start") is not None:
        project_start = _parse_date(raw.get("project_start"))
        if project_start is None:
            err("E_INVALID_DATE", "project_start must be an ISO date (YYYY-MM-DD)", "project_start")

    tasks: list[Task] = []
    seen: set[str] = set()

    for i, item in enumerate(tasks_raw):
        task_path = f"tasks[{i}]"
        if not isinstance(item, dict):
            err("E_INVALID_TYPE", "task must be an object", task_path)
            continue

        tid = _task_id(item.get("id"))
        if not isinstance(tid, str) or not tid.strip():
            err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{task_path}.id")
            continue
        if tid in seen:
            err("E_DUPLICATE_ID", f"duplicate task id: {tid}", f"{task_path}.id")
            continue
        seen.add(tid)

        title = item.get("title", tid)
        if not isinstance(title, str):
            err("E_INVALID_TYPE", "title must be a string", f"{task_path}.title")
            continue

        status = normalize_status(item.get("status", "not_started"))
        if status not in TASK_STATUSES:
            err("E_INVALID_ENUM", f"status must be one of {list(TASK_STATUSES)}", f"{task_path}.status")
            continue

        start = end = None
        bad_date = False
        for key in ("planned_start", "planned_end"):
            v = item.get(key)
            if v is None:
                continue
            parsed = _parse_date(v)
            if parsed is None:
                err("E_INVALID_DATE", f"{key} must be an ISO date (YYYY-MM-DD)", f"{task_path}.{key}")
                bad_date = True
            elif key == "planned_start":
                start = parsed
            else:
                end = parsed
        if bad_date:
            continue
        if start is not None and end is not None and end < start:
            err(
                "E_INVALID_DATE_RANGE",
                "planned_end must not be earlier than planned_start",
                f"{task_path}.planned_end",
            )
            continue

        duration = item.get("duration_days")
        if isinstance(duration, float) and duration.is_integer():
            duration = int(duration)
        if duration is not None and not _is_int(duration):
            err("E_INVALID_TYPE", "duration_days must be an integer", f"{task_path}.duration_days")
            continue
        if duration is not None and duration < 0:
            err("E_NEGATIVE_DURATION", "duration_days must be non-negative", f"{task_path}.duration_days")
            continue

        refs: dict[str, tuple[TaskRef, ...]] = {}
        refs_ok = True
        for key in ("predecessors", "successors"):
            parsed_refs, ref_errors = _parse_refs(item.get(key), f"{task_path}.{key}", file)
            errors.extend(ref_errors)
            refs_ok = refs_ok and not ref_errors
            refs[key] = parsed_refs
        if not refs_ok:
            continue

        tasks.append(
            Task(
                id=tid,
                title=title,
                status=cast(TaskStatus, status),
                planned_start=start,
                planned_end=end,
                duration_days=cast(Optional[int], duration),
                predecessors=refs["predecessors"],
                successors=refs["successors"],
            )
        )

    links: list[DependencyLink] = []
    links_raw = raw.get("links") or []
    if not isinstance(links_raw, list):
        err("E_INVALID_TYPE", "links must be an array", "links")
    else:
        for li, link in enumerate(links_raw):
            link_path = f"links[{li}]"
            if not isinstance(link, dict):
                err("E_INVALID_TYPE", "link must be an object", link_path)
                continue
            source, target = _task_id(link.get("source")), _task_id(link.get("target"))
            if not isinstance(source, str) or not isinstance(target, str):
                err("E_REQUIRED_FIELD", "source and target are required strings", link_path)
                continue
            ltype, lag, problem = _link_fields(link)
            if problem:
                err(problem[0], problem[1], f"{link_path}.{problem[2]}")
                continue
            links.append(DependencyLink(source_id=source, target_id=target, link_type=ltype, lag_days=lag))

    if errors:
        return None, _sorted(errors)

    return TaskSnapshot(tasks=tasks, links=links, project_start=project_start), []


def _link_fields(obj: dict[str, Any]) -> tuple[LinkType, int, Optional[tuple[str, str, str]]]:
    ltype = obj.get("type", "FS")
    if isinstance(ltype, str):
        ltype = ltype.strip().upper()
    if ltype not in LINK_TYPES:
        return "FS", 0, ("E_INVALID_ENUM", f"type must be one of {list(LINK_TYPES)}", "type")
    lag = obj.get("lag", 0)
    if isinstance(lag, float) and lag.is_integer():
        lag = int(lag)
    if not _is_int(lag):
        return "FS", 0, ("E_INVALID_TYPE", "lag must be an integer number of days", "lag")
    return cast(LinkType, ltype), lag, None


def _parse_refs(
    v: Any, path: str, file: Optional[str]
) -> tuple[tuple[TaskRef, ...], list[TaskValidationError]]:
    if v is None:
        return (), []
    if not isinstance(v, list):
        return (), [
            TaskValidationError(code="E_INVALID_TYPE", message="must be an array", file=file, path=path)
        ]

    out: list[TaskRef] = []
    errors: list[TaskValidationError] = []
    for i, ref in enumerate(v):
        # "B" is shorthand for {"id": "B", "type": "FS", "lag": 0}.
        ref = _task_id(ref)
        if isinstance(ref, str):
            out.append(TaskRef(task_id=ref))
            continue
        if not isinstance(ref, dict) or not isinstance(_task_id(ref.get("id")), str):
            errors.append(
                TaskValidationError(
                    code="E_INVALID_TYPE",
                    message="reference must be a task id or an object with a string id",
                    file=file,
                    path=f"{path}[{i}]",
                )
            )
            continue
        ltype, lag, problem = _link_fields(ref)
        if problem:
            errors.append(
                TaskValidationError(
                    code=problem[0], message=problem[1], file=file, path=f"{path}[{i}].{problem[2]}"
                )
            )
            continue
        out.append(TaskRef(task_id=_task_id(ref["id"]), link_type=ltype, lag_days=lag))
    return tuple(out), errors


def summarize_tasks(snapshot: TaskSnapshot) -> str:
    counts = Counter([t.status for t in snapshot.tasks])
    parts = [f"{s}={counts.get(s, 0)}" for s in TASK_STATUSES]
    ref_count = sum(len(t.predecessors) + len(t.successors) for t in snapshot.tasks)
    return (
        f"OK: {len(snapshot.tasks)} tasks ("
        + ", ".join(parts)
        + f")\nReferences: {ref_count + len(snapshot.links)}"
    )


def _sorted(errors: Iterable[TaskValidationError]) -> list[TaskValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
