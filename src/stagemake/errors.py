# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class BuildError(Exception):
    """
    Structured build error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigError(BuildError):
    def __init__(self, message: str, **details):
        super().__init__(kind="config", message=message, details=details)


class MissingSourceError(BuildError):
    def __init__(self, path: str, directory: str):
        super().__init__(
            kind="missing source",
            message=f"source file not found or unreadable: {path}",
            details={"directory": directory},
        )


class TemplateError(BuildError):
    def __init__(self, template: str, unresolved: list[str]):
        super().__init__(
            kind="template",
            message=f"unresolved placeholders {unresolved} in command",
            details={"template": template},
        )
