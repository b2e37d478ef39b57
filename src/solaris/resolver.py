from __future__ import annotations

import logging
from collections import defaultdict

from solaris.registry import Registry
from solaris.remote_state import RemoteStateIdentity

logger = logging.getLogger(__name__)


def identity_owners(registry: Registry) -> dict[RemoteStateIdentity, list[str]]:
    """Map every published identity to the sorted roots publishing it."""
    owners: dict[RemoteStateIdentity, list[str]] = defaultdict(list)
    for workspace in registry:
        if workspace.identity is not None:
            owners[workspace.identity].append(workspace.root)
    return {identity: sorted(roots) for identity, roots in owners.items()}


def duplicate_identities(registry: Registry) -> dict[RemoteStateIdentity, list[str]]:
    return {
        identity: roots
        for identity, roots in identity_owners(registry).items()
        if len(roots) > 1
    }


def resolve(registry: Registry) -> Registry:
    """Link every input to the output it reads, in place.

    Existing links are dropped first, so resolving twice yields the same
    links. An input whose dependency is published by several workspaces is
    linked to the first of them, in root order, that has the output. An
    input nobody can satisfy keeps ``resolves_to`` unset.
    """
    registry.clear_links()
    owners = identity_owners(registry)
    for identity, roots in owners.items():
        if len(roots) > 1:
            logger.warning(
                "state %s is published by several workspaces: %s",
                identity,
                ", ".join(roots),
            )

    resolved = 0
    for item in registry.inputs:
        if item.dependency is None:
            continue
        for root in owners.get(item.dependency, ()):
            output = registry.find_output(root, item.name)
            if output is not None:
                registry.link(item.handle, output.handle)
                resolved += 1
                break

    logger.debug(
        "resolved %d of %d inputs", resolved, len(registry.inputs)
    )
    return registry
