"""Placeholder substitution for name and command templates."""

from __future__ import annotations

import re
from collections.abc import Mapping

# `{name}` where name is a regex group identifier. Anything else is literal text.
PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_template(template: str, variables: Mapping[str, str]) -> str:
    """Fill `{name}` placeholders from `variables`.

    Never fails: a placeholder without a value renders as an empty string.

    Args:
        template: Template text, e.g. "svc-{id}"
        variables: Capture Set (group name -> matched text)

    Returns:
        Rendered string
    """
    return PLACEHOLDER_RE.sub(lambda m: variables.get(m.group(1), ""), template)


def capture_set(match: re.Match[str]) -> dict[str, str]:
    """Build the Capture Set from the named groups that took part in a match."""
    return {name: value for name, value in match.groupdict().items() if value is not None}
