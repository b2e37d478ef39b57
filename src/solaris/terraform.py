"""Discovery and extraction of Terraform workspaces."""

from __future__ import annotations

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

import hcl2

from solaris.exceptions import ExtractionError
from solaris.extraction import (
    BackendDescriptor,
    Extraction,
    ExtractionResult,
    OutputDeclaration,
    Runbooks,
    VariableReference,
)
from solaris.remote_state import DependencyDeclaration, RemoteStateIdentity

logger = logging.getLogger(__name__)

TF_SUFFIX = ".tf"
PRE_RUNBOOK_NAME = "PreManual.md"
POST_RUNBOOK_NAME = "PostManual.md"
DEFAULT_IGNORE_PATTERNS = (r"\.terraform", "modules")

_REMOTE_STATE_REF_RE = re.compile(
    r"\$\{data\.terraform_remote_state\.(?P<legacy_dep>[A-Za-z0-9_-]+)\.(?P<legacy_var>[A-Za-z0-9_-]+)\}"
    r"|data\.terraform_remote_state\.(?P<dep>[A-Za-z0-9_-]+)\.outputs\.(?P<var>[A-Za-z0-9_-]+)"
)
_IDENTITY_FIELDS = ("bucket", "key", "profile", "region")


def discover_workspaces(
    base: Path, ignore: Iterable[str] = DEFAULT_IGNORE_PATTERNS
) -> dict[str, Path]:
    """Map each workspace key to its directory.

    A workspace is a directory holding at least one ``.tf`` file; the key is
    its path relative to ``base``. Paths matching an ignore pattern are
    skipped, and so is everything below them.
    """
    patterns = [re.compile(pattern) for pattern in ignore]
    found: dict[str, Path] = {}
    for dirpath, dirnames, filenames in os.walk(base):
        directory = Path(dirpath)
        rel = directory.relative_to(base).as_posix()
        if rel != "." and any(pattern.search(rel) for pattern in patterns):
            dirnames[:] = []
            continue
        dirnames.sort()
        tf_files = [
            name
            for name in filenames
            if name.endswith(TF_SUFFIX)
            and not any(pattern.search(f"{rel}/{name}") for pattern in patterns)
        ]
        if tf_files:
            found[rel] = directory
    logger.debug("discovered %d workspaces below %s", len(found), base)
    return found


def _unquote(value: object) -> object:
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _blocks(value: object) -> list[dict[str, object]]:
    """Flatten ``hcl2``'s list-of-dicts block encoding into plain dicts."""
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _field(block: Mapping[str, object], name: str) -> object:
    """Look up ``name`` whether or not the parser kept quotes on the key."""
    for key, value in block.items():
        if _unquote(key) == name:
            return value
    return None


def _labelled(value: object) -> list[tuple[str, object]]:
    entries: list[tuple[str, object]] = []
    for block in _blocks(value):
        for label, body in block.items():
            if label.startswith("__"):
                continue
            entries.append((str(_unquote(label)), body))
    return entries


def _identity(config: object) -> RemoteStateIdentity | None:
    blocks = _blocks(config)
    if not blocks:
        return None
    merged: dict[str, object] = {}
    for block in blocks:
        merged.update((str(_unquote(key)), value) for key, value in block.items())
    values = {
        name: str(_unquote(merged.get(name, "")) or "") for name in _IDENTITY_FIELDS
    }
    if not values["key"]:
        return None
    return RemoteStateIdentity(**values)


def parse_hcl(path: Path) -> tuple[str, dict[str, object]]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ExtractionError(str(path), str(exc)) from exc
    try:
        data = hcl2.loads(raw)
    except Exception as exc:
        raise ExtractionError(str(path), str(exc)) from exc
    return raw, data if isinstance(data, dict) else {}


def backend_identity(data: Mapping[str, object]) -> RemoteStateIdentity | None:
    identity: RemoteStateIdentity | None = None
    for block in _blocks(_field(data, "terraform")):
        for backend_type, body in _labelled(_field(block, "backend")):
            if backend_type != "s3":
                continue
            found = _identity(body)
            if found is not None:
                identity = found
    return identity


def remote_state_dependencies(
    data: Mapping[str, object], declaring_file: str
) -> list[DependencyDeclaration]:
    declarations: list[DependencyDeclaration] = []
    for data_type, sources in _labelled(_field(data, "data")):
        if data_type != "terraform_remote_state":
            continue
        for name, body in _labelled(sources):
            for settings in _blocks(body):
                identity = _identity(_field(settings, "config"))
                if identity is None:
                    continue
                declarations.append(
                    DependencyDeclaration(
                        name=name, identity=identity, declaring_file=declaring_file
                    )
                )
    return declarations


def output_declarations(
    data: Mapping[str, object], declaring_file: str
) -> list[OutputDeclaration]:
    outputs: list[OutputDeclaration] = []
    for name, body in _labelled(_field(data, "output")):
        value = None
        bodies = _blocks(body)
        if bodies:
            value = _unquote(_field(bodies[0], "value"))
        outputs.append(
            OutputDeclaration(name=name, declaring_file=declaring_file, value=value)
        )
    return outputs


def variable_references(raw: str, declaring_file: str) -> list[VariableReference]:
    references: list[VariableReference] = []
    for match in _REMOTE_STATE_REF_RE.finditer(raw):
        dependency = match.group("legacy_dep") or match.group("dep")
        variable = match.group("legacy_var") or match.group("var")
        references.append(
            VariableReference(
                dependency_name=dependency,
                output_name=variable,
                full_text=match.group(0),
                declaring_file=declaring_file,
            )
        )
    return references


def extract_workspace(root: str, directory: Path) -> ExtractionResult:
    backend: BackendDescriptor | None = None
    dependencies: list[DependencyDeclaration] = []
    references: list[VariableReference] = []
    outputs: list[OutputDeclaration] = []
    for path in sorted(directory.glob(f"*{TF_SUFFIX}")):
        raw, data = parse_hcl(path)
        identity = backend_identity(data)
        if identity is not None:
            backend = BackendDescriptor(identity=identity, declaring_file=path.name)
        dependencies.extend(remote_state_dependencies(data, path.name))
        references.extend(variable_references(raw, path.name))
        outputs.extend(output_declarations(data, path.name))
    return ExtractionResult(
        root=root,
        backend=backend,
        dependencies=tuple(dependencies),
        references=tuple(references),
        outputs=tuple(outputs),
    )


def read_runbooks(directory: Path) -> Runbooks | None:
    texts: dict[str, str | None] = {}
    for slot, name in (("pre", PRE_RUNBOOK_NAME), ("post", POST_RUNBOOK_NAME)):
        path = directory / name
        if not path.is_file():
            texts[slot] = None
            continue
        try:
            texts[slot] = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ExtractionError(str(path), str(exc)) from exc
    if texts["pre"] is None and texts["post"] is None:
        return None
    return Runbooks(
        pre=texts["pre"],
        post=texts["post"],
        pre_file=PRE_RUNBOOK_NAME,
        post_file=POST_RUNBOOK_NAME,
    )


@dataclass
class TerraformExtractor:
    """Extract every Terraform workspace found below ``base``."""

    base: Path
    ignore: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    jobs: int = 1
    directories: dict[str, Path] = field(default_factory=dict, init=False)

    def extract(self) -> Extraction:
        self.directories = discover_workspaces(self.base, self.ignore)
        items = sorted(self.directories.items())
        if self.jobs > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                results = list(
                    pool.map(lambda item: extract_workspace(*item), items)
                )
        else:
            results = [extract_workspace(root, directory) for root, directory in items]

        extraction = Extraction(results=results)
        for root, directory in items:
            books = read_runbooks(directory)
            if books is not None:
                extraction.runbooks[root] = books
        return extraction

    def directory_of(self, root: str) -> Path:
        return self.directories.get(root, self.base / root)
