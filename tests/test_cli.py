"""Test the sapflow-compile command line."""

import json

from sapflow.cli import main
from sapflow.core.settings import Settings


def _write(path, document):
    path.write_text(json.dumps(document), encoding="utf-8")


def test_compiles_directory(tmp_path, legacy_recording):
    input_dir, output_dir = tmp_path / "in", tmp_path / "out"
    input_dir.mkdir()
    _write(input_dir / "zt.json", legacy_recording)

    code = main(["--input-dir", str(input_dir), "--output-dir", str(output_dir)])

    assert code == 0
    assert sorted(p.name for p in output_dir.iterdir()) == ["aliases.json", "zt.json"]


def test_main_flow_flag_writes_main_flow(tmp_path, legacy_recording):
    input_dir, output_dir = tmp_path / "in", tmp_path / "out"
    input_dir.mkdir()
    _write(input_dir / "zt.json", legacy_recording)

    assert main(["--input-dir", str(input_dir), "--output-dir", str(output_dir), "--main-flow", "--workers", "2"]) == 0
    main_flow = json.loads((output_dir / "mainFlow.json").read_text(encoding="utf-8"))
    assert main_flow["$mainFlow"]["steps"]["runZt"]["subflow"] == "zt"


def test_skipped_recording_sets_exit_code_one(tmp_path, legacy_recording):
    input_dir, output_dir = tmp_path / "in", tmp_path / "out"
    input_dir.mkdir()
    _write(input_dir / "zt.json", legacy_recording)
    (input_dir / "bad.json").write_text("not json", encoding="utf-8")

    assert main(["--input-dir", str(input_dir), "--output-dir", str(output_dir)]) == 1
    assert (output_dir / "zt.json").exists()


def test_missing_input_directory_exits_two(tmp_path):
    assert main(["--input-dir", str(tmp_path / "nope"), "--output-dir", str(tmp_path / "out")]) == 2


def test_bad_worker_count_in_environment_falls_back(tmp_path, monkeypatch, legacy_recording):
    monkeypatch.setenv("SAPFLOW_WORKERS", "many")
    assert Settings.from_env().workers == 1

    input_dir, output_dir = tmp_path / "in", tmp_path / "out"
    input_dir.mkdir()
    _write(input_dir / "zt.json", legacy_recording)
    assert main(["--input-dir", str(input_dir), "--output-dir", str(output_dir)]) == 0
