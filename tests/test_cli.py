import json

import pytest

from Medical_Conformance.cli import EXIT_INTERRUPTED, build_parser, main


def test_parser_defaults():
    args = build_parser().parse_args(["validate-directory", "--directory", "data"])
    assert args.pattern == "*.*"
    assert args.formats is None
    assert args.pass_threshold is None
    assert args.verbose is False


def test_parser_rejects_unknown_format():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["validate", "--resource", "a.json", "--formats", "pdf"])


def test_validate_valid_resource_exits_zero(write_resource, patient, capsys, tmp_path):
    path = write_resource("patient.json", patient)

    code = main(["validate", "--resource", str(path), "--output", str(tmp_path / "out")])

    out = capsys.readouterr().out
    assert code == 0
    assert "Single Resource Validation: patient.json" in out
    assert "Validation completed: 1/1 resources passed (100.0%)" in out


def test_validate_invalid_resource_exits_one(write_resource, invalid_patient, capsys):
    path = write_resource("bad.json", invalid_patient)
    assert main(["validate", "--resource", str(path)]) == 1
    assert "OVERALL STATUS: FAILED" in capsys.readouterr().out


def test_validate_missing_resource_exits_one(tmp_path, capsys):
    assert main(["validate", "--resource", str(tmp_path / "missing.json")]) == 1
    assert "not found" in capsys.readouterr().err


def test_validate_directory_writes_reports(
    tmp_path, write_resource, patient, invalid_patient, capsys
):
    data = tmp_path / "data"
    write_resource("a.json", patient, data)
    write_resource("b.json", invalid_patient, data)
    output = tmp_path / "out"

    code = main(
        [
            "validate-directory",
            "--directory",
            str(data),
            "--output",
            str(output),
            "--formats",
            "json",
            "csv",
            "console",
            "--pass-threshold",
            "50",
            "--verbose",
        ]
    )

    assert code == 0
    json_reports = list(output.glob("validation-report-*.json"))
    assert len(json_reports) == 1
    assert len(list(output.glob("validation-report-*.csv"))) == 1
    payload = json.loads(json_reports[0].read_text(encoding="utf-8"))
    assert payload["configuration"]["minimum_pass_rate_threshold"] == 50.0
    assert payload["summary"]["pass_rate"] == 50.0
    out = capsys.readouterr().out
    assert "DETAILED RESULTS:" in out
    assert "Validation completed: 1/2 resources passed (50.0%)" in out


def test_validate_directory_default_threshold_fails(tmp_path, write_resource, patient, invalid_patient):
    write_resource("a.json", patient)
    write_resource("b.json", invalid_patient)
    assert main(["validate-directory", "--directory", str(tmp_path), "--formats", "console"]) == 1


def test_validate_directory_missing_directory(tmp_path, capsys):
    assert main(["validate-directory", "--directory", str(tmp_path / "nope")]) == 1
    assert "Directory not found" in capsys.readouterr().err


def test_keyboard_interrupt_exits_130(monkeypatch, write_resource, patient):
    path = write_resource("patient.json", patient)

    def _interrupt(coro):
        coro.close()
        raise KeyboardInterrupt

    monkeypatch.setattr("Medical_Conformance.cli.asyncio.run", _interrupt)
    assert main(["validate", "--resource", str(path)]) == EXIT_INTERRUPTED


def test_unknown_environment_reports_configuration_error(
    monkeypatch, write_resource, patient, capsys
):
    path = write_resource("patient.json", patient)
    monkeypatch.setenv("MC_ENV", "staging")

    assert main(["validate", "--resource", str(path)]) == 1
    assert "Invalid configuration" in capsys.readouterr().err
