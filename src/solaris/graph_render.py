from __future__ import annotations

from solaris.registry import Registry
from solaris.resolver import identity_owners

RENDER_HINT = (
    "/*\n"
    "   Use 'solaris ... graph | fdp -Tsvg > out.svg' or\n"
    "   similar to generate a vector visualization\n"
    "*/"
)


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_workspaces(registry: Registry) -> str:
    """One node per workspace and an edge to every workspace it reads state from."""
    owners = identity_owners(registry)
    lines = ["digraph workspaces {"]
    for workspace in registry:
        lines.append(f"  {_quote(workspace.root)};")
    for workspace in registry:
        targets: list[str] = []
        for declaration in workspace.dependencies:
            for other in owners.get(declaration.identity, ()):
                if other not in targets:
                    targets.append(other)
        for other in targets:
            lines.append(f"  {_quote(workspace.root)} -> {_quote(other)};")
    lines.append("}")
    return "\n".join(lines)


def render_workspaces_detailed(registry: Registry) -> str:
    """Clusters per workspace with their inputs and outputs as nodes.

    Edges run from an input to the output it resolves to and are labelled
    with the files declaring the input; dangling inputs are drawn red.
    """
    lines = ["digraph workspaces {"]
    for index, workspace in enumerate(registry):
        lines.append(f"  subgraph cluster_{index} {{")
        lines.append(f"    label={_quote(workspace.root)};")
        outputs = registry.outputs_of(workspace.root)
        if outputs:
            lines.append(f"    subgraph cluster_{index}_outputs {{")
            lines.append('      label="outputs";')
            for output in outputs:
                lines.append(
                    f"      {_quote(f'output:{output.handle}')} "
                    f"[label={_quote(output.name)}];"
                )
            lines.append("    }")
        inputs = registry.inputs_of(workspace.root)
        if inputs:
            lines.append(f"    subgraph cluster_{index}_inputs {{")
            lines.append('      label="inputs";')
            for item in inputs:
                attributes = f"label={_quote(item.name)}"
                if item.dangling:
                    attributes += ",color=red"
                lines.append(f"      {_quote(f'input:{item.handle}')} [{attributes}];")
            lines.append("    }")
        lines.append("  }")
    for item in registry.inputs:
        if item.resolves_to is None:
            continue
        label = ", ".join(sorted(item.declaring_files))
        lines.append(
            f"  {_quote(f'input:{item.handle}')} -> "
            f"{_quote(f'output:{item.resolves_to}')} [label={_quote(label)}];"
        )
    lines.append("}")
    return "\n".join(lines)
