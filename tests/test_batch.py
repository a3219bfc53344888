import shutil

import pytest

from vhdl2ver.batch import find_sources, transpile_folder
from vhdl2ver.config import TranspileOptions


@pytest.fixture
def project(tmp_path, fixtures_dir):
    src = tmp_path / "src"
    (src / "sub").mkdir(parents=True)
    shutil.copy(fixtures_dir / "mux2to1.vhd", src / "mux2to1.vhd")
    shutil.copy(fixtures_dir / "counter.vhd", src / "sub" / "counter.vhdl")
    (src / "broken.vhd").write_text("entity broken is\n    port (a : in std_logic\nend;\n")
    (src / "notes.txt").write_text("not vhdl")
    return src


def test_find_sources(project):
    assert [p.name for p in find_sources(project)] == ["broken.vhd", "mux2to1.vhd"]
    assert [p.name for p in find_sources(project, recursive=True)] == ["broken.vhd", "mux2to1.vhd", "counter.vhdl"]


def test_one_failure_does_not_stop_the_batch(project, tmp_path):
    out = tmp_path / "out"
    report = transpile_folder(project, out, dialect="legacy", max_workers=2)

    assert [o.source.name for o in report.outcomes] == ["broken.vhd", "mux2to1.vhd"]
    (bad,) = report.failed
    (good,) = report.succeeded
    assert bad.source.name == "broken.vhd" and "line" in bad.error
    assert good.output == out / "mux2to1.v"
    assert "module mux2to1" in good.output.read_text()


def test_recursive_mirrors_tree(project, tmp_path):
    out = tmp_path / "out"
    report = transpile_folder(project, out, recursive=True, dialect="strict")
    assert (out / "sub" / "counter.sv").is_file()
    assert (out / "mux2to1.sv").is_file()
    assert len(report.succeeded) == 2 and len(report.failed) == 1


def test_output_defaults_next_to_sources(project):
    transpile_folder(project, dialect="legacy")
    assert (project / "mux2to1.v").is_file()


def test_report_format(project, tmp_path):
    report = transpile_folder(project, tmp_path / "out", dialect="strict")
    text = report.format()
    assert "=== Batch VHDL to SystemVerilog transpilation ===" in text
    assert "Total files found:       2" in text
    assert "Successfully transpiled: 1" in text
    assert "Failed:                  1" in text
    assert "✓ " in text and "✗ " in text
    assert text.index("=== Successful transpilations ===") < text.index("=== Errors ===")


def test_empty_folder(tmp_path):
    report = transpile_folder(tmp_path)
    assert report.outcomes == ()
    assert report.format() == f"No VHDL files found in '{tmp_path}'\n"


def test_missing_folder(tmp_path):
    with pytest.raises(NotADirectoryError):
        transpile_folder(tmp_path / "nope")


def test_allowed_folders(project, tmp_path):
    options = TranspileOptions(allowed_folders=(tmp_path / "elsewhere",))
    with pytest.raises(PermissionError):
        transpile_folder(project, options=options)


def test_dialect_from_options(project, tmp_path):
    report = transpile_folder(project, tmp_path / "out", options=TranspileOptions(dialect="legacy"))
    assert report.dialect == "legacy"
    assert report.succeeded[0].output.suffix == ".v"


def test_same_output_name_is_not_overwritten(tmp_path, fixtures_dir):
    shutil.copy(fixtures_dir / "mux2to1.vhd", tmp_path / "m.vhd")
    shutil.copy(fixtures_dir / "counter.vhd", tmp_path / "m.vhdl")
    report = transpile_folder(tmp_path, tmp_path / "out", dialect="strict")

    (good,) = report.succeeded
    (bad,) = report.failed
    assert good.source.name == "m.vhd" and good.output == tmp_path / "out" / "m.sv"
    assert bad.source.name == "m.vhdl" and "already written by" in bad.error
    assert "module mux2to1" in good.output.read_text()


def test_malformed_literal_does_not_stop_the_batch(project, tmp_path):
    (project / "a_bad_literal.vhd").write_text(
        "entity x is\n    port (y : out integer);\nend;\narchitecture r of x is\nbegin\n    y <= 2#102#;\nend;\n")
    report = transpile_folder(project, tmp_path / "out", dialect="legacy")
    assert [o.source.name for o in report.failed] == ["a_bad_literal.vhd", "broken.vhd"]
    assert "invalid based literal 2#102#" in report.failed[0].error
    assert len(report.succeeded) == 1
