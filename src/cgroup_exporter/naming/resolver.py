"""Display-name resolution for matched cgroups.

Three rewrite strategies are supported:
- RemovePrefix: pure string operation, never fails
- Template(Literal): in-process `{name}` substitution, never fails
- Template(Shell): blocking external evaluation, may fail

Only the shell path can raise for a valid rule. A Shell template paired with
a non-regex selector is rejected by config validation; reaching it here is a
ConfigurationInvariantError.
"""

from __future__ import annotations

import logging

from cgroup_exporter.core.errors import (
    ConfigurationInvariantError,
    EvaluationError,
    TemplateEvaluationError,
)
from cgroup_exporter.naming.rules import (
    Literal,
    NameRule,
    Regex,
    RemovePrefix,
    Shell,
    Template,
    TemplateSpec,
)
from cgroup_exporter.naming.shell import Evaluator
from cgroup_exporter.naming.template import capture_set, render_template

logger = logging.getLogger(__name__)


def resolve_name(raw_path: str, rule: NameRule, evaluator: Evaluator) -> str:
    """Compute the externally visible name of a cgroup.

    Args:
        raw_path: cgroup path relative to the hierarchy root
        rule: The rule selected for this cgroup
        evaluator: Used only by shell templates

    Returns:
        The display name

    Raises:
        TemplateEvaluationError: The shell evaluation failed
        ConfigurationInvariantError: The rule should never have passed validation
    """
    rewrite = rule.rewrite

    if rewrite is None:
        return raw_path

    if isinstance(rewrite, RemovePrefix):
        return raw_path.removeprefix(rewrite.prefix)

    if isinstance(rewrite, Template):
        if isinstance(rule.selector, Regex):
            return _resolve_regex_template(raw_path, rule.selector, rewrite.spec, evaluator)
        return _resolve_plain_template(rule, rewrite.spec)

    raise ConfigurationInvariantError(f"Unknown rewrite strategy: {rewrite!r}")


def _resolve_plain_template(rule: NameRule, spec: TemplateSpec) -> str:
    # No captures without a regex, so only a plain rename is meaningful.
    if isinstance(spec, Literal):
        return spec.template
    raise ConfigurationInvariantError(
        f"Shell templates require a regex selector, got {rule.describe()}. "
        "Configuration validation should have rejected this rule."
    )


def _resolve_regex_template(
    raw_path: str, selector: Regex, spec: TemplateSpec, evaluator: Evaluator
) -> str:
    match = selector.pattern.search(raw_path)

    if match is None:
        # Nothing to substitute: fall back to the template text itself.
        logger.debug(
            f"{selector.pattern.pattern!r} does not match {raw_path!r}, using template as-is"
        )
        if isinstance(spec, Literal):
            return spec.template
        return spec.command

    variables = capture_set(match)

    if isinstance(spec, Literal):
        return render_template(spec.template, variables)

    if isinstance(spec, Shell):
        try:
            return evaluator.evaluate(spec.command, variables, spec.output)
        except EvaluationError as e:
            raise TemplateEvaluationError(
                f"Failed to evaluate shell command template for {raw_path!r}: {e}"
            ) from e

    raise ConfigurationInvariantError(f"Unknown template kind: {spec!r}")
