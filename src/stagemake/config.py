# config.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .ui.console import Console

DESCRIPTOR_NAME = "Stagefile"

STAGE_KEY = re.compile(r"^stage_(\d+)$")
KNOWN_KEYS = {"inherit", "disregard_unless", "subdirs", "targets", "naming"}


def _join_words(value: Any) -> Any:
    # YAML lists are accepted wherever a whitespace-separated list is
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return value


class TransformSection(BaseModel):
    """One rule set within a stage."""

    model_config = ConfigDict(extra="forbid")

    source: Optional[str] = Field(default=None, description="File list or SHELL:<cmd>")
    destination: Optional[str] = Field(
        default=None, description="Rule tag, SHELL:<cmd>, custom:<name> or literal list"
    )
    transform: str = Field(default="", description="Command template (@IN@ @OUT@ @DIR@ @STAGE@)")
    parallel: Optional[PositiveInt] = None
    onlyonce: bool = False

    @field_validator("source", "destination", mode="before")
    @classmethod
    def _join_lists(cls, v: Any) -> Any:
        return _join_words(v)


class ConfigDescriptor(BaseModel):
    """Per-directory build descriptor."""

    model_config = ConfigDict(extra="ignore")

    inherit: dict[str, str] = Field(default_factory=dict)
    disregard_unless: Optional[str] = None
    subdirs: dict[str, str] = Field(default_factory=dict)
    targets: dict[str, dict[str, Any]] = Field(default_factory=dict)
    naming: dict[int, str] = Field(default_factory=dict)
    stages: dict[int, list[TransformSection]] = Field(default_factory=dict)
    unknown_keys: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _collect_stages(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError(f"descriptor must be a mapping, got {type(data).__name__}")
        data = dict(data)
        stages: dict[int, list] = {}
        unknown: list[str] = []
        for key in list(data):
            m = STAGE_KEY.match(str(key))
            if m:
                value = data.pop(key)
                if value is None:
                    value = []
                stages[int(m.group(1))] = value if isinstance(value, list) else [value]
            elif key not in KNOWN_KEYS:
                unknown.append(str(key))
        data["stages"] = stages
        data["unknown_keys"] = sorted(unknown)
        return data

    @field_validator("inherit", mode="before")
    @classmethod
    def _stringify_inherit(cls, v: Any) -> Any:
        # YAML turns 1/true into int/bool; environment values are strings
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @field_validator("subdirs", mode="before")
    @classmethod
    def _stringify_subdirs(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val).strip() for k, val in v.items()}
        return v

    def sections(self, stage: int) -> list[TransformSection]:
        return self.stages.get(stage, [])

    @property
    def max_stage(self) -> int:
        return max(self.stages) if self.stages else 0


def parse_descriptor(text: str, origin: str = "<string>") -> ConfigDescriptor:
    """
    Parse descriptor text into a ConfigDescriptor.

    Raises ConfigError for YAML syntax errors and schema violations.
    An empty document is an empty descriptor.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"malformed descriptor: {e}", path=origin) from e
    if data is None:
        data = {}
    try:
        return ConfigDescriptor.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid descriptor: {e}", path=origin) from e


def select_target(
    descriptor: ConfigDescriptor,
    target: Optional[str],
    origin: str = "<string>",
) -> ConfigDescriptor:
    """
    Replace the descriptor by its named target, if one is active.

    Descriptors that declare no targets are returned unchanged.
    """
    if not target or not descriptor.targets:
        return descriptor
    if target not in descriptor.targets:
        raise ConfigError(
            f"unknown target {target!r}",
            path=origin,
            known=sorted(descriptor.targets),
        )
    try:
        return ConfigDescriptor.model_validate(descriptor.targets[target] or {})
    except ValidationError as e:
        raise ConfigError(f"invalid target {target!r}: {e}", path=origin) from e


def load_descriptor(
    directory: Path,
    console: Console,
    *,
    target: Optional[str] = None,
    required_target: bool = False,
) -> ConfigDescriptor:
    """
    Load one directory's descriptor.

    Absent file -> empty descriptor. Configuration errors are warnings and
    degrade to an empty descriptor, except an unknown target when
    `required_target` is set (the invocation root), which is raised.
    """
    path = directory / DESCRIPTOR_NAME
    if not path.is_file():
        return ConfigDescriptor()

    try:
        descriptor = parse_descriptor(path.read_text(encoding="utf-8"), origin=str(path))
    except (ConfigError, OSError, UnicodeDecodeError) as e:
        console.print_warning(f"{path}: {e}; using empty configuration")
        return ConfigDescriptor()

    if descriptor.unknown_keys:
        console.print_warning(f"{path}: ignoring unknown keys {descriptor.unknown_keys}")

    try:
        selected = select_target(descriptor, target, origin=str(path))
    except ConfigError as e:
        if required_target:
            raise
        console.print_warning(f"{e}; using empty configuration")
        return ConfigDescriptor()

    if selected is not descriptor and selected.unknown_keys:
        console.print_warning(f"{path}: target {target!r}: ignoring unknown keys {selected.unknown_keys}")
    return selected
