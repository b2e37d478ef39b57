"""In-memory collection of discovered workspaces.

Workspaces are keyed by their root path. Inputs and outputs live in flat
lists owned by the :class:`Registry` and point at each other through integer
handles into those lists, so ``resolves_to`` and ``refered_by`` never hold
object references.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping

from solaris.exceptions import AmbiguousReferenceError
from solaris.extraction import ExtractionResult, Runbooks
from solaris.remote_state import DependencyDeclaration, RemoteStateIdentity
from solaris.runbook import scan_references

logger = logging.getLogger(__name__)


@dataclass
class Output:
    handle: int
    name: str
    declaring_file: str
    belongs_to: str
    value: object = None
    refered_by: set[int] = field(default_factory=set)


@dataclass
class Input:
    handle: int
    name: str
    full_reference_text: str
    belongs_to: str
    declaring_files: set[str] = field(default_factory=set)
    dependency: RemoteStateIdentity | None = None
    dependency_name: str | None = None
    resolves_to: int | None = None

    @property
    def dangling(self) -> bool:
        return self.resolves_to is None

    def merge_key(self) -> tuple[object, ...]:
        if self.dependency is None:
            return (self.name, None, self.full_reference_text)
        return (self.name, self.dependency)


@dataclass
class Workspace:
    root: str
    identity: RemoteStateIdentity | None = None
    identity_file: str | None = None
    dependencies: list[DependencyDeclaration] = field(default_factory=list)
    output_ids: list[int] = field(default_factory=list)
    input_ids: list[int] = field(default_factory=list)
    pre_runbook: str | None = None
    post_runbook: str | None = None


@dataclass
class Registry:
    workspaces: dict[str, Workspace] = field(default_factory=dict)
    inputs: list[Input] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)

    def __contains__(self, root: object) -> bool:
        return root in self.workspaces

    def __iter__(self) -> Iterator[Workspace]:
        return iter(self.workspaces.values())

    def __len__(self) -> int:
        return len(self.workspaces)

    def workspace(self, root: str) -> Workspace:
        return self.workspaces[root]

    def input(self, handle: int) -> Input:
        return self.inputs[handle]

    def output(self, handle: int) -> Output:
        return self.outputs[handle]

    def inputs_of(self, root: str) -> list[Input]:
        return [self.inputs[handle] for handle in self.workspaces[root].input_ids]

    def outputs_of(self, root: str) -> list[Output]:
        return [self.outputs[handle] for handle in self.workspaces[root].output_ids]

    def find_output(self, root: str, name: str) -> Output | None:
        for output in self.outputs_of(root):
            if output.name == name:
                return output
        return None

    def resolved_output(self, item: Input) -> Output | None:
        if item.resolves_to is None:
            return None
        return self.outputs[item.resolves_to]

    def add_workspace(self, root: str) -> Workspace:
        workspace = Workspace(root=root)
        self.workspaces[root] = workspace
        return workspace

    def add_output(
        self, root: str, name: str, *, declaring_file: str, value: object = None
    ) -> Output:
        output = Output(
            handle=len(self.outputs),
            name=name,
            declaring_file=declaring_file,
            belongs_to=root,
            value=value,
        )
        self.outputs.append(output)
        self.workspaces[root].output_ids.append(output.handle)
        return output

    def add_input(
        self,
        root: str,
        name: str,
        *,
        full_reference_text: str,
        declaring_file: str,
        dependency: RemoteStateIdentity | None = None,
        dependency_name: str | None = None,
    ) -> Input:
        """Add an unresolved input, merging it into an equivalent one.

        Two references to the same variable of the same dependency in one
        workspace are one input that accumulates its declaring files.
        """
        candidate = Input(
            handle=len(self.inputs),
            name=name,
            full_reference_text=full_reference_text,
            belongs_to=root,
            declaring_files={declaring_file},
            dependency=dependency,
            dependency_name=dependency_name,
        )
        key = candidate.merge_key()
        for existing in self.inputs_of(root):
            if existing.merge_key() == key:
                existing.declaring_files.add(declaring_file)
                return existing
        self.inputs.append(candidate)
        self.workspaces[root].input_ids.append(candidate.handle)
        return candidate

    def link(self, input_handle: int, output_handle: int) -> None:
        item = self.inputs[input_handle]
        if item.resolves_to is not None:
            self.outputs[item.resolves_to].refered_by.discard(input_handle)
        item.resolves_to = output_handle
        self.outputs[output_handle].refered_by.add(input_handle)

    def clear_links(self) -> None:
        for item in self.inputs:
            item.resolves_to = None
        for output in self.outputs:
            output.refered_by.clear()

    def consumers(self, root: str) -> set[str]:
        """Workspaces holding an input resolved to one of ``root``'s outputs."""
        return {
            self.inputs[handle].belongs_to
            for output in self.outputs_of(root)
            for handle in output.refered_by
        }

    def providers(self, root: str) -> set[str]:
        """Workspaces owning an output one of ``root``'s inputs resolves to."""
        return {
            self.outputs[item.resolves_to].belongs_to
            for item in self.inputs_of(root)
            if item.resolves_to is not None
        }

    def match_fragment(self, fragment: str) -> list[str]:
        needle = fragment.rstrip("/") or fragment
        if needle in self.workspaces:
            return [needle]
        return sorted(root for root in self.workspaces if needle in root)

    def resolve_fragment(self, fragment: str) -> str | None:
        matches = self.match_fragment(fragment)
        if len(matches) > 1:
            raise AmbiguousReferenceError(fragment, matches)
        return matches[0] if matches else None


def build_registry(
    extracted: Iterable[ExtractionResult],
    runbooks: Mapping[str, Runbooks] | None = None,
) -> Registry:
    """Create one workspace per extraction result, without cross-linking.

    Run-book tokens become extra inputs whose dependency is the identity of
    the workspace the token's path fragment points at.
    """
    registry = Registry()
    for result in sorted(extracted, key=lambda item: item.root):
        workspace = registry.add_workspace(result.root)
        if result.backend is not None:
            workspace.identity = result.backend.identity
            workspace.identity_file = result.backend.declaring_file
        for declaration in result.dependencies:
            if declaration not in workspace.dependencies:
                workspace.dependencies.append(declaration)
        for declared in result.outputs:
            registry.add_output(
                result.root,
                declared.name,
                declaring_file=declared.declaring_file,
                value=declared.value,
            )
        by_name = {item.name: item for item in workspace.dependencies}
        for reference in result.references:
            declaration = by_name.get(reference.dependency_name)
            registry.add_input(
                result.root,
                reference.output_name,
                full_reference_text=reference.full_text,
                declaring_file=reference.declaring_file,
                dependency=declaration.identity if declaration else None,
                dependency_name=reference.dependency_name,
            )

    for root, books in sorted((runbooks or {}).items()):
        if root not in registry:
            logger.debug("ignoring run-books of unknown workspace %s", root)
            continue
        workspace = registry.workspace(root)
        workspace.pre_runbook = books.pre
        workspace.post_runbook = books.post
        for file_name, text in books.documents():
            _add_runbook_inputs(registry, root, file_name, text)

    logger.debug(
        "built registry: %d workspaces, %d inputs, %d outputs",
        len(registry.workspaces),
        len(registry.inputs),
        len(registry.outputs),
    )
    return registry


def _add_runbook_inputs(
    registry: Registry, root: str, file_name: str, text: str
) -> None:
    for reference in scan_references(text, workspace=root):
        target = registry.resolve_fragment(reference.fragment)
        if target == root:
            # applying the workspace itself provides its own outputs
            continue
        dependency = registry.workspace(target).identity if target else None
        registry.add_input(
            root,
            reference.output_name,
            full_reference_text=reference.token,
            declaring_file=file_name,
            dependency=dependency,
        )
