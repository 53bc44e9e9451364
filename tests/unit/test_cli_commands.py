import json
from pathlib import Path

from click.testing import CliRunner

from cmdflow.cli import cli
from cmdflow.utils.config import get_settings

from wf_docs import canvas_node, edge, workflow_doc


def _lines(result, prefix: str) -> list[str]:
    return [ln for ln in result.output.splitlines() if ln.startswith(prefix)]


def write_flow(tmp_path: Path, name: str = "flow.json") -> Path:
    doc = workflow_doc(
        [canvas_node("t", "manualTrigger"), canvas_node("d", "delay", {"ms": 0}, x=200)],
        [edge("e1", "t", "d")],
        name="Two steps",
    )
    p = tmp_path / name
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def test_cli_kinds_filter():
    runner = CliRunner()
    result = runner.invoke(cli, ["kinds", "--filter", "trigger"])
    assert result.exit_code == 0
    assert "manualTrigger" in result.output
    assert "delay " not in result.output

    result = runner.invoke(cli, ["kinds", "--filter", "no-such-kind"])
    assert "No node kinds matched." in result.output


def test_cli_ports_lists_param_handles():
    result = CliRunner().invoke(cli, ["ports", "loop"])
    assert result.exit_code == 0
    payload = json.loads(result.output[result.output.index("{"):])
    assert [p["id"] for p in payload["outputs"]] == ["loop", "done"]
    assert "param:times:in" in [p["id"] for p in payload["inputs"]]


def test_cli_validate_with_dir(tmp_path: Path):
    write_flow(tmp_path)
    (tmp_path / "broken.yaml").write_text("version: '0'\n", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(cli, ["validate", "--dir", str(tmp_path), "--no-recursive"])
    assert result.exit_code == 1
    assert len(_lines(result, "OK  ")) == 1
    assert len(_lines(result, "ERR ")) == 1
    assert "Two steps (2 nodes, 1 edges)" in result.output


def test_cli_validate_requires_targets(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(get_settings(), "WORKFLOWS_DIR", tmp_path / "missing")
    result = CliRunner().invoke(cli, ["validate"])
    assert result.exit_code == 2


def test_cli_validate_defaults_to_workflows_dir(tmp_path: Path, monkeypatch):
    write_flow(tmp_path)
    monkeypatch.setattr(get_settings(), "WORKFLOWS_DIR", tmp_path)
    result = CliRunner().invoke(cli, ["validate"])
    assert result.exit_code == 0
    assert len(_lines(result, "OK  ")) == 1


def test_cli_lint_reports_type_mismatch(tmp_path: Path):
    doc = workflow_doc(
        [canvas_node("c", "constValue", {"valueType": "string"}), canvas_node("d", "delay")],
        [edge("e1", "c", "d", sh="value", th="param:ms:in")],
    )
    p = tmp_path / "lint.json"
    p.write_text(json.dumps(doc), encoding="utf-8")
    result = CliRunner().invoke(cli, ["lint", str(p)])
    assert result.exit_code == 1
    assert _lines(result, "ERR edge e1")

    ok = CliRunner().invoke(cli, ["lint", str(write_flow(tmp_path))])
    assert ok.exit_code == 0
    assert "1 edge(s) valid" in ok.output


def test_cli_export_backend_to_file(tmp_path: Path):
    out = tmp_path / "out" / "backend.json"
    result = CliRunner().invoke(cli, ["export-backend", str(write_flow(tmp_path)), "--out", str(out)])
    assert result.exit_code == 0
    graph = json.loads(out.read_text(encoding="utf-8"))
    assert graph["name"] == "Two steps"
    assert graph["edges"][0]["source_handle"] == "next"
    assert {n["kind"] for n in graph["nodes"]} == {"manualTrigger", "delay"}


def test_cli_step_continuous(tmp_path: Path):
    result = CliRunner().invoke(cli, ["step", str(write_flow(tmp_path)), "--continuous", "--delay-ms", "0"])
    assert result.exit_code == 0
    (line,) = _lines(result, "OK  ")
    assert "finished" in line


def test_cli_step_single(tmp_path: Path):
    result = CliRunner().invoke(cli, ["step", str(write_flow(tmp_path)), "--steps", "5"])
    assert result.exit_code == 0
    assert [ln.split()[1] for ln in _lines(result, "OK  ")] == ["advanced", "finished"]


def test_cli_step_bad_file(tmp_path: Path):
    p = tmp_path / "bad.json"
    p.write_text("{}", encoding="utf-8")
    result = CliRunner().invoke(cli, ["step", str(p)])
    assert result.exit_code == 1
    assert _lines(result, "ERR ")


def test_cli_config_is_json():
    result = CliRunner().invoke(cli, ["config"])
    assert result.exit_code == 0
    assert "HISTORY_LIMIT" in result.output
