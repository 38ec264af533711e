"""Rule selection: the first configured rule that matches a cgroup wins."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from cgroup_exporter.naming.rules import NameRule


class CgroupMatcher:
    """Ordered collection of name rules."""

    def __init__(self, rules: Sequence[NameRule]) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[NameRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def match(self, raw_path: str) -> NameRule | None:
        """Return the first rule whose selector matches `raw_path`."""
        for rule in self._rules:
            if rule.matches(raw_path):
                return rule
        return None

    def select(self, paths: Iterable[str]) -> Iterator[tuple[str, NameRule]]:
        """Yield (path, rule) for every path that some rule selects."""
        for path in paths:
            rule = self.match(path)
            if rule is not None:
                yield path, rule
