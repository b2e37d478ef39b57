"""Consistency checks over a resolved registry.

Every check is independent and returns human readable findings; nothing
here raises for a finding.
"""

from __future__ import annotations

from typing import Callable

from solaris.registry import Registry
from solaris.resolver import duplicate_identities

UNUSED_OUTPUTS = "Unused Outputs"
INEXISTENT_INPUTS = "Inexistent Inputs"
UNUSED_DEPENDENCIES = "Unused terraform_remote_state data sources"
CIRCULAR_DEPENDENCIES = "Circular Dependencies"
DUPLICATE_REMOTE_STATES = "Duplicate Remote States"


def lint_unused_outputs(registry: Registry) -> list[str]:
    findings: list[str] = []
    for output in registry.outputs:
        if not output.refered_by:
            findings.append(
                f"output '{output.name}' of workspace '{output.belongs_to}' "
                f"(in file '{output.declaring_file}') seems to be unused"
            )
    return findings


def lint_inexistent_inputs(registry: Registry) -> list[str]:
    findings: list[str] = []
    for item in registry.inputs:
        if item.dangling:
            files = ", ".join(sorted(item.declaring_files))
            findings.append(
                f"input '{item.full_reference_text}' of workspace '{item.belongs_to}' "
                f"(in file '{files}') seems to refer to an inexistent output"
            )
    return findings


def lint_unused_dependencies(registry: Registry) -> list[str]:
    findings: list[str] = []
    for workspace in registry:
        used = {
            item.dependency
            for item in registry.inputs_of(workspace.root)
            if item.dependency is not None
        }
        for declaration in workspace.dependencies:
            if declaration.identity not in used:
                findings.append(
                    f"terraform_remote_state data source '{declaration.name}' in "
                    f"workspace '{workspace.root}' (in file "
                    f"'{declaration.declaring_file}') seems to be unused"
                )
    return findings


def find_cycle(registry: Registry, start: str) -> list[str] | None:
    """Depth-first search for a dependency cycle reachable from ``start``.

    Returns the cycle as a list of roots beginning and ending with the same
    root, or ``None``.
    """
    path: list[str] = [start]
    on_path: set[str] = {start}
    cleared: set[str] = set()
    stack = [iter(sorted(registry.providers(start)))]
    while stack:
        step = next(stack[-1], None)
        if step is None:
            stack.pop()
            finished = path.pop()
            on_path.discard(finished)
            cleared.add(finished)
            continue
        if step in on_path:
            return path[path.index(step):] + [step]
        if step in cleared:
            continue
        path.append(step)
        on_path.add(step)
        stack.append(iter(sorted(registry.providers(step))))
    return None


def lint_circular_dependencies(registry: Registry) -> list[str]:
    findings: list[str] = []
    for workspace in registry:
        cycle = find_cycle(registry, workspace.root)
        if cycle is not None:
            findings.append(
                f"circular dependency in workspace '{workspace.root}': "
                f"'{' -> '.join(cycle)}'"
            )
    return findings


def lint_duplicate_remote_states(registry: Registry) -> list[str]:
    findings: list[str] = []
    for identity, roots in sorted(
        duplicate_identities(registry).items(), key=lambda item: item[1]
    ):
        findings.append(
            f"remote state {identity} is published by several workspaces: "
            + ", ".join(f"'{root}'" for root in roots)
        )
    return findings


CHECKS: tuple[tuple[str, Callable[[Registry], list[str]]], ...] = (
    (UNUSED_OUTPUTS, lint_unused_outputs),
    (INEXISTENT_INPUTS, lint_inexistent_inputs),
    (UNUSED_DEPENDENCIES, lint_unused_dependencies),
    (CIRCULAR_DEPENDENCIES, lint_circular_dependencies),
    (DUPLICATE_REMOTE_STATES, lint_duplicate_remote_states),
)


def lint(registry: Registry) -> dict[str, list[str]]:
    """Run every check; categories without findings are left out."""
    report: dict[str, list[str]] = {}
    for name, check in CHECKS:
        findings = check(registry)
        if findings:
            report[name] = findings
    return report
