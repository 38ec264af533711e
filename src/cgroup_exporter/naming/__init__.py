"""Naming module - cgroup selection and display-name rewriting.

- rules: NameRule and its selector / rewrite variants
- matcher: first-match-wins rule selection
- resolver: display-name computation
- shell: Evaluator capability (ShellEvaluator, MockEvaluator)
"""

from __future__ import annotations

from cgroup_exporter.naming.matcher import CgroupMatcher
from cgroup_exporter.naming.resolver import resolve_name
from cgroup_exporter.naming.rules import (
    ExactPath,
    Glob,
    Literal,
    NameRule,
    OutputStream,
    Regex,
    RemovePrefix,
    Shell,
    Template,
)
from cgroup_exporter.naming.shell import Evaluator, MockEvaluator, ShellEvaluator
from cgroup_exporter.naming.template import render_template

__all__ = [
    "CgroupMatcher",
    "Evaluator",
    "ExactPath",
    "Glob",
    "Literal",
    "MockEvaluator",
    "NameRule",
    "OutputStream",
    "Regex",
    "RemovePrefix",
    "Shell",
    "ShellEvaluator",
    "Template",
    "render_template",
    "resolve_name",
]
