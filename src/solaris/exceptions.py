"""Structural errors raised while building, resolving and planning workspaces."""

from __future__ import annotations

from typing import Iterable


class SolarisError(RuntimeError):
    """Base class for every error that aborts a command."""


class ExtractionError(SolarisError):
    """A workspace source file could not be read or parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"could not extract '{path}': {reason}")
        self.path = path
        self.reason = reason


class MalformedReferenceError(SolarisError):
    """A run-book token does not split into ``workspace.output``."""

    def __init__(self, token: str, *, workspace: str | None = None) -> None:
        where = f" in workspace '{workspace}'" if workspace is not None else ""
        super().__init__(f"reference '{token}'{where} seems to be malformed")
        self.token = token
        self.workspace = workspace


class AmbiguousReferenceError(SolarisError):
    """A path fragment matches more than one workspace."""

    def __init__(self, fragment: str, matches: Iterable[str]) -> None:
        self.fragment = fragment
        self.matches = tuple(sorted(matches))
        super().__init__(
            f"fragment '{fragment}' is ambiguous, it matches: {', '.join(self.matches)}"
        )


class UnknownRootError(SolarisError):
    def __init__(self, root: str) -> None:
        super().__init__(f"workspace '{root}' does not exist")
        self.root = root


class UnresolvableDependencyError(SolarisError):
    """An in-scope dependency is published but lacks the referenced output."""

    def __init__(
        self, reference: str, *, workspace: str, files: Iterable[str]
    ) -> None:
        self.reference = reference
        self.workspace = workspace
        self.files = tuple(sorted(files))
        super().__init__(
            f"unresolvable dependency '{reference}' please fix in '{workspace}' "
            f"(file {', '.join(self.files)})"
        )


class PlanStuckError(SolarisError):
    """Planning reached its fixed point with in-scope workspaces left over."""

    def __init__(self, leftover: Iterable[str]) -> None:
        self.leftover = tuple(sorted(leftover))
        super().__init__(
            "cannot order workspaces (circular dependency?): "
            + ", ".join(self.leftover)
        )


class RunbookRenderError(SolarisError):
    def __init__(self, command: str, cwd: str, reason: str) -> None:
        super().__init__(f"could not run command '{command}' in '{cwd}': {reason}")
        self.command = command
        self.cwd = cwd
        self.reason = reason
