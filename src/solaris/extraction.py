"""Typed boundary between a configuration dialect and the workspace graph.

Nothing past this module knows which files a workspace came from or how
they were parsed; an extractor only has to fill these records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from solaris.remote_state import DependencyDeclaration, RemoteStateIdentity


@dataclass(frozen=True)
class BackendDescriptor:
    identity: RemoteStateIdentity
    declaring_file: str


@dataclass(frozen=True)
class VariableReference:
    """A symbolic ``<dependency>.<output>`` use found in a source file."""

    dependency_name: str
    output_name: str
    full_text: str
    declaring_file: str


@dataclass(frozen=True)
class OutputDeclaration:
    name: str
    declaring_file: str
    value: object = None


@dataclass(frozen=True)
class ExtractionResult:
    root: str
    backend: BackendDescriptor | None = None
    dependencies: tuple[DependencyDeclaration, ...] = ()
    references: tuple[VariableReference, ...] = ()
    outputs: tuple[OutputDeclaration, ...] = ()


@dataclass(frozen=True)
class Runbooks:
    """Optional free-text instructions applied around a workspace."""

    pre: str | None = None
    post: str | None = None
    pre_file: str = "PreManual.md"
    post_file: str = "PostManual.md"

    def documents(self) -> list[tuple[str, str]]:
        docs: list[tuple[str, str]] = []
        if self.pre:
            docs.append((self.pre_file, self.pre))
        if self.post:
            docs.append((self.post_file, self.post))
        return docs


@dataclass
class Extraction:
    """Everything collected from a base directory before the graph is built."""

    results: list[ExtractionResult] = field(default_factory=list)
    runbooks: dict[str, Runbooks] = field(default_factory=dict)


class Extractor(Protocol):
    def extract(self) -> Extraction: ...
