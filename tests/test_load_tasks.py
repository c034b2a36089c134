from pathlib import Path

from dependency_engine.core.errors import TaskLoadError
from dependency_engine.core.io.load_tasks import load_tasks, load_tasks_text

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def test_load_json_success():
    raw = load_tasks(str(EXAMPLES / "chain.json"))
    assert isinstance(raw["tasks"], list)
    assert len(raw["tasks"]) == 3
    assert raw["links"] == []
    assert raw["__file__"].endswith("chain.json")


def test_load_yaml_success():
    raw = load_tasks(str(EXAMPLES / "opening.yaml"))
    assert len(raw["tasks"]) == 5
    assert raw["project_start"] is not None


def test_load_bare_list_is_task_list():
    raw = load_tasks(str(EXAMPLES / "parallel.json"))
    assert [t["id"] for t in raw["tasks"]] == ["A", "B", "C"]


def test_load_missing_file():
    try:
        load_tasks(str(EXAMPLES / "does-not-exist.json"))
        assert False, "expected TaskLoadError"
    except TaskLoadError as e:
        assert e.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "tasks.txt"
    p.write_text("hello", encoding="utf-8")
    try:
        load_tasks(str(p))
        assert False, "expected TaskLoadError"
    except TaskLoadError as e:
        assert e.code == "E_UNSUPPORTED_FORMAT"


def test_load_text_bad_json():
    try:
        load_tasks_text("{not json", file="<stdin>")
        assert False, "expected TaskLoadError"
    except TaskLoadError as e:
        assert e.code == "E_JSON_PARSE"
        assert e.file == "<stdin>"


def test_load_text_invalid_top_level():
    try:
        load_tasks_text('"just a string"')
        assert False, "expected TaskLoadError"
    except TaskLoadError as e:
        assert e.code == "E_INVALID_TOP_LEVEL"
