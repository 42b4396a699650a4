# template.py
from __future__ import annotations

import re
import shlex
from typing import Iterable

from .errors import TemplateError

SHELL_PREFIX = "SHELL:"

# @IN@, @OUT@, @DIR@, @STAGE@ (autoconf-style, never valid shell syntax on its own)
_PLACEHOLDER = re.compile(r"@([A-Z][A-Z0-9_]*)@")


def is_shell(value: str | None) -> bool:
    return value is not None and value.startswith(SHELL_PREFIX)


def strip_shell(value: str) -> str:
    if is_shell(value):
        return value[len(SHELL_PREFIX):].strip()
    return value.strip()


def quote_all(paths: Iterable[str]) -> str:
    return " ".join(shlex.quote(p) for p in paths)


def render(template: str, **values: str) -> str:
    """
    Substitute @NAME@ placeholders.

    Keys are matched case-insensitively against the placeholder name, so
    render(t, out="x.o") fills @OUT@. Values are inserted verbatim; quote
    them before passing if needed. Any placeholder left without a value
    raises TemplateError rather than reaching the shell.
    """
    table = {k.upper(): v for k, v in values.items()}
    unresolved: list[str] = []

    def _sub(m: re.Match) -> str:
        name = m.group(1)
        if name in table:
            return table[name]
        unresolved.append(name)
        return m.group(0)

    out = _PLACEHOLDER.sub(_sub, strip_shell(template))
    if unresolved:
        raise TemplateError(template, sorted(set(unresolved)))
    return out
