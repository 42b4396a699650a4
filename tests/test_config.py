from __future__ import annotations

from textwrap import dedent

import pytest

from stagemake.config import DESCRIPTOR_NAME, ConfigDescriptor, load_descriptor, parse_descriptor, select_target
from stagemake.errors import ConfigError


def test_stage_keys_are_collected_in_both_shapes():
    d = parse_descriptor(
        dedent(
            """
        stage_0:
          source: x.c
          destination: compile-to-object
          transform: cc -c @IN@ -o @OUT@
        stage_2:
          - source: [a.txt, b.txt]
            destination: out.txt
            transform: cat @IN@ > @OUT@
            parallel: 3
          - transform: echo done
            onlyonce: true
        """
        )
    )
    assert sorted(d.stages) == [0, 2]
    assert d.max_stage == 2
    assert d.sections(0)[0].destination == "compile-to-object"
    first, second = d.sections(2)
    assert first.source == "a.txt b.txt"
    assert first.parallel == 3
    assert second.destination is None
    assert second.onlyonce is True
    assert d.sections(1) == []


def test_inherit_values_become_strings():
    d = parse_descriptor("inherit:\n  OPT: 2\n  DEBUG: true\n  EMPTY:\n")
    assert d.inherit == {"OPT": "2", "DEBUG": "True", "EMPTY": ""}


def test_naming_and_subdirs():
    d = parse_descriptor(
        dedent(
            """
        naming:
          0: compile
          "1": link
        subdirs:
          docs: ignore
          vendor: make -C . all
        """
        )
    )
    assert d.naming == {0: "compile", 1: "link"}
    assert d.subdirs["vendor"] == "make -C . all"


def test_unknown_keys_are_recorded():
    d = parse_descriptor("inhert: {}\nstage_0: []\n")
    assert d.unknown_keys == ["inhert"]
    assert d.stages == {0: []}


def test_empty_document_is_empty_descriptor():
    assert parse_descriptor("") == ConfigDescriptor()


@pytest.mark.parametrize(
    "text",
    [
        "stage_0: [unclosed",
        "- just\n- a list\n",
        "stage_0:\n  transform: x\n  parallel: 0\n",
        "stage_0:\n  transform: x\n  bogus: 1\n",
    ],
)
def test_bad_descriptors_raise_config_error(text):
    with pytest.raises(ConfigError):
        parse_descriptor(text)


def test_select_target_replaces_descriptor():
    d = parse_descriptor(
        dedent(
            """
        stage_0: {transform: echo default}
        targets:
          release:
            stage_0: {transform: echo release}
        """
        )
    )
    assert select_target(d, None) is d
    assert select_target(d, "release").sections(0)[0].transform == "echo release"
    with pytest.raises(ConfigError):
        select_target(d, "nightly")


def test_select_target_without_targets_table_is_identity():
    d = parse_descriptor("stage_0: {transform: echo hi}")
    assert select_target(d, "release") is d


def test_load_descriptor_absent_file(tmp_path, console):
    assert load_descriptor(tmp_path, console) == ConfigDescriptor()


def test_load_descriptor_degrades_on_bad_file(tmp_path, console, capsys):
    (tmp_path / DESCRIPTOR_NAME).write_text("stage_0: [oops", encoding="utf-8")
    assert load_descriptor(tmp_path, console) == ConfigDescriptor()
    assert "using empty configuration" in capsys.readouterr().err


def test_load_descriptor_unknown_target(tmp_path, console, capsys):
    (tmp_path / DESCRIPTOR_NAME).write_text("targets:\n  a: {}\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_descriptor(tmp_path, console, target="b", required_target=True)
    assert load_descriptor(tmp_path, console, target="b") == ConfigDescriptor()
    assert "unknown target" in capsys.readouterr().err


def test_load_descriptor_warns_about_unknown_keys(tmp_path, console, capsys):
    (tmp_path / DESCRIPTOR_NAME).write_text("stages: 3\n", encoding="utf-8")
    load_descriptor(tmp_path, console)
    assert "unknown keys ['stages']" in capsys.readouterr().err


def test_load_descriptor_warns_about_unknown_keys_in_target(tmp_path, console, capsys):
    (tmp_path / DESCRIPTOR_NAME).write_text(
        "targets:\n  release:\n    inhert: {A: 1}\n    stage_0: {transform: echo hi}\n",
        encoding="utf-8",
    )
    d = load_descriptor(tmp_path, console, target="release")
    assert d.max_stage == 0
    assert d.sections(0)[0].transform == "echo hi"
    assert "target 'release': ignoring unknown keys ['inhert']" in capsys.readouterr().err
