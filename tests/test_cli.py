from __future__ import annotations

from click.testing import CliRunner

from stagemake.cli import cli

COMPILE = (
    "stage_0:\n"
    "  source: x.c\n"
    "  destination: compile-to-object\n"
    "  transform: cp @IN@ @OUT@\n"
)


def test_build_then_up_to_date(tree):
    root = tree({"a/Stagefile": COMPILE, "a/x.c": "x"})
    runner = CliRunner()

    result = runner.invoke(cli, ["build", str(root)])
    assert result.exit_code == 0, result.output
    assert "a/x.o (destination absent)" in result.output

    result = runner.invoke(cli, ["build", str(root)])
    assert result.exit_code == 0
    assert "everything up to date" in result.output


def test_failing_job_exit_code_is_propagated(tree):
    root = tree({"Stagefile": COMPILE.replace("cp @IN@ @OUT@", "exit 5"), "x.c": "x"})
    result = CliRunner().invoke(cli, ["build", str(root)])
    assert result.exit_code == 5


def test_missing_source_exits_nonzero(tree):
    root = tree({"Stagefile": COMPILE})
    result = CliRunner().invoke(cli, ["build", str(root)])
    assert result.exit_code == 2


def test_define_overrides(tree):
    root = tree(
        {
            "Stagefile": "inherit: {WHO: file}\nstage_0:\n  transform: echo $WHO > who.txt\n",
        }
    )
    result = CliRunner().invoke(cli, ["--terse", "build", str(root), "-D", "WHO=cli"])
    assert result.exit_code == 0, result.output
    assert (root / "who.txt").read_text().strip() == "cli"

    result = CliRunner().invoke(cli, ["build", str(root), "-D", "broken"])
    assert result.exit_code == 2
    assert "NAME=VALUE" in result.output


def test_unknown_target_is_fatal(tree):
    root = tree({"Stagefile": "targets:\n  docs: {}\n"})
    result = CliRunner().invoke(cli, ["build", str(root), "--target", "nope"])
    assert result.exit_code == 2


def test_custom_cache_file_and_plugin(tree, tmp_path):
    root = tree(
        {
            "proj/Stagefile": (
                "stage_0:\n"
                "  source: a.txt\n"
                "  destination: custom:copy\n"
                "  transform: cp @IN@ @OUT@\n"
            ),
            "proj/a.txt": "a",
            "rules.py": (
                "def register(registry):\n"
                "    registry.register_custom('copy', lambda src, d: [src + '.copy'])\n"
            ),
        }
    )
    cache_file = tmp_path / "state" / "cache.json"
    result = CliRunner().invoke(
        cli,
        ["build", str(root / "proj"), "--cache-file", str(cache_file), "--plugin", str(root / "rules.py")],
    )
    assert result.exit_code == 0, result.output
    assert (root / "proj" / "a.txt.copy").exists()
    assert cache_file.exists()
    assert not (root / "proj" / ".stagemake-cache.json").exists()


def test_stages_listing(tree):
    root = tree(
        {
            "Stagefile": "naming: {0: compile, 2: link}\nsubdirs: {vendor: make all}\nstage_2: {transform: echo link}\n",
            "lib/Stagefile": COMPILE,
            "vendor/README": "",
        }
    )
    result = CliRunner().invoke(cli, ["stages", str(root)])
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "stage 0 (compile): lib",
        "stage 1: -",
        "stage 2 (link): .",
        "forced: vendor: make all",
    ]


def test_stages_honours_overrides_in_gates(tree):
    root = tree(
        {
            "Stagefile": "inherit: {FEATURE: 'on'}\n",
            "opt/Stagefile": "disregard_unless: test \"$FEATURE\" = on\nstage_0: {transform: echo opt}\n",
        }
    )
    result = CliRunner().invoke(cli, ["stages", str(root)])
    assert result.output.splitlines() == ["stage 0: opt"]

    result = CliRunner().invoke(cli, ["stages", str(root), "-D", "FEATURE=off"])
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["stage 0: -"]
