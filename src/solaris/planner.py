"""Tiered execution order for a resolved registry."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Iterator

from solaris.exceptions import (
    PlanStuckError,
    UnknownRootError,
    UnresolvableDependencyError,
)
from solaris.registry import Input, Registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered tiers; workspaces inside one tier may be applied together."""

    tiers: tuple[tuple[str, ...], ...]

    def __iter__(self) -> Iterator[tuple[str, ...]]:
        return iter(self.tiers)

    def __len__(self) -> int:
        return len(self.tiers)

    def tier_of(self, root: str) -> int | None:
        for index, tier in enumerate(self.tiers):
            if root in tier:
                return index
        return None

    def workspaces(self) -> list[str]:
        return [root for tier in self.tiers for root in tier]

    def as_json_list(self) -> list[list[str]]:
        return [list(tier) for tier in self.tiers]


def forward_closure(registry: Registry, roots: Iterable[str]) -> set[str]:
    """The roots plus every workspace consuming their outputs, transitively."""
    seen: set[str] = set()
    queue = deque(roots)
    while queue:
        root = queue.popleft()
        if root in seen:
            continue
        seen.add(root)
        queue.extend(registry.consumers(root) - seen)
    return seen


def select_roots(
    registry: Registry, requested: Iterable[str] = ()
) -> tuple[set[str], set[str]]:
    """Return ``(roots, scope)`` for the requested root fragments.

    Without fragments every workspace is in scope and the roots are the
    workspaces that read no output of another workspace.
    """
    fragments = [fragment for fragment in requested if fragment]
    if not fragments:
        roots = {
            workspace.root
            for workspace in registry
            if not registry.providers(workspace.root)
        }
        return roots, set(registry.workspaces)

    matched: set[str] = set()
    for fragment in fragments:
        root = registry.resolve_fragment(fragment)
        if root is None:
            raise UnknownRootError(fragment)
        matched.add(root)

    scope = forward_closure(registry, matched)
    # drop requested roots that depend on another in-scope workspace
    roots = {root for root in matched if not registry.providers(root) & scope}
    logger.debug(
        "roots %s reduced scope to %d workspaces", sorted(roots), len(scope)
    )
    return roots, scope


def _check_resolvable(registry: Registry, scope: set[str]) -> None:
    published = {
        registry.workspace(root).identity
        for root in scope
        if registry.workspace(root).identity is not None
    }
    for root in sorted(scope):
        for item in registry.inputs_of(root):
            if not item.dangling:
                continue
            if item.dependency is not None and item.dependency in published:
                raise UnresolvableDependencyError(
                    item.full_reference_text,
                    workspace=root,
                    files=item.declaring_files,
                )
            logger.warning(
                "input '%s' of workspace '%s' is not published by any "
                "workspace, assuming it is applied already",
                item.full_reference_text,
                root,
            )


def _satisfied(
    registry: Registry, item: Input, scope: set[str], planned: set[str]
) -> bool:
    output = registry.resolved_output(item)
    if output is None:
        return True
    return output.belongs_to not in scope or output.belongs_to in planned


def plan(registry: Registry, roots: Iterable[str] = ()) -> ExecutionPlan:
    """Partition the workspaces in scope into tiers.

    A workspace lands in a tier once every input it has is satisfied by an
    earlier tier, by a workspace outside the scope, or is dangling against
    a state nobody in scope publishes.
    """
    first, scope = select_roots(registry, roots)
    _check_resolvable(registry, scope)

    tiers: list[tuple[str, ...]] = []
    planned: set[str] = set()
    latest = first
    while latest:
        tier = tuple(sorted(latest))
        tiers.append(tier)
        planned.update(tier)
        logger.debug("tier %d: %s", len(tiers) - 1, ", ".join(tier))

        candidates: set[str] = set()
        for root in tier:
            candidates |= registry.consumers(root)
        candidates = (candidates & scope) - planned
        latest = {
            root
            for root in candidates
            if all(
                _satisfied(registry, item, scope, planned)
                for item in registry.inputs_of(root)
            )
        }

    leftover = scope - planned
    if leftover:
        raise PlanStuckError(leftover)
    return ExecutionPlan(tiers=tuple(tiers))
