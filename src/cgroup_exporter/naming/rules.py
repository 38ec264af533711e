"""Runtime name rules.

A NameRule pairs a selector (which cgroup paths it applies to) with an
optional rewrite strategy (how the matched path becomes the exported name).
Rules are built from validated configuration and never mutated afterwards.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass
from enum import Enum


class OutputStream(str, Enum):
    """Which stream of a shell evaluation provides the name."""

    STDOUT = "stdout"
    STDERR = "stderr"


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExactPath:
    """Matches one cgroup path verbatim."""

    path: str

    def matches(self, raw_path: str) -> bool:
        return raw_path == self.path


@dataclass(frozen=True)
class Glob:
    """Shell-style pattern; `*` also matches across `/`."""

    pattern: str

    def matches(self, raw_path: str) -> bool:
        return fnmatch.fnmatchcase(raw_path, self.pattern)


@dataclass(frozen=True)
class Regex:
    """Regular expression searched anywhere in the path."""

    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, pattern: str) -> Regex:
        return cls(re.compile(pattern))

    def matches(self, raw_path: str) -> bool:
        return self.pattern.search(raw_path) is not None


Selector = ExactPath | Glob | Regex


# ---------------------------------------------------------------------------
# Rewrites
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    """Name template rendered in-process from `{name}` placeholders."""

    template: str


@dataclass(frozen=True)
class Shell:
    """Command template whose output becomes the name."""

    command: str
    output: OutputStream = OutputStream.STDOUT


TemplateSpec = Literal | Shell


@dataclass(frozen=True)
class RemovePrefix:
    prefix: str


@dataclass(frozen=True)
class Template:
    spec: TemplateSpec


Rewrite = RemovePrefix | Template


@dataclass(frozen=True)
class NameRule:
    """Selection pattern plus optional rewrite strategy."""

    selector: Selector
    rewrite: Rewrite | None = None

    def matches(self, raw_path: str) -> bool:
        return self.selector.matches(raw_path)

    def describe(self) -> str:
        """Short human-readable form, used in logs and CLI tables."""
        if isinstance(self.selector, Regex):
            return f"regex:{self.selector.pattern.pattern}"
        if isinstance(self.selector, Glob):
            return f"glob:{self.selector.pattern}"
        return f"exact:{self.selector.path}"
