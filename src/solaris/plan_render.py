"""Execution guide rendering, including live run-book values."""

from __future__ import annotations

import html
import logging
import subprocess
from pathlib import Path
from typing import Callable, TypeAlias

import markdown

from solaris.exceptions import RunbookRenderError, UnresolvableDependencyError
from solaris.planner import ExecutionPlan
from solaris.registry import Registry
from solaris.runbook import scan_references, substitute

logger = logging.getLogger(__name__)

OutputFetcher: TypeAlias = Callable[[Path, str], str]
DirectoryLookup: TypeAlias = Callable[[str], Path]
RenderedManuals: TypeAlias = dict[str, tuple[str | None, str | None]]


def terraform_output_fetcher(binary: str = "terraform") -> OutputFetcher:
    def _fetch(directory: Path, name: str) -> str:
        command = [binary, "output", "-raw", name]
        logger.debug("running %s in %s", " ".join(command), directory)
        try:
            completed = subprocess.run(
                command,
                cwd=directory,
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            stderr = getattr(exc, "stderr", None)
            reason = stderr.strip() if isinstance(stderr, str) and stderr.strip() else str(exc)
            raise RunbookRenderError(" ".join(command), str(directory), reason) from exc
        return completed.stdout.rstrip("\n")

    return _fetch


def render_runbook_live(
    text: str,
    *,
    registry: Registry,
    owner: str,
    declaring_file: str,
    directory_of: DirectoryLookup,
    fetch: OutputFetcher,
) -> str:
    """Replace every ``{{ fragment.output }}`` token with the live value."""
    values: dict[str, str] = {}
    for reference in scan_references(text, workspace=owner):
        target = registry.resolve_fragment(reference.fragment)
        if target is None or registry.find_output(target, reference.output_name) is None:
            raise UnresolvableDependencyError(
                reference.token, workspace=owner, files=[declaring_file]
            )
        values[reference.token] = fetch(directory_of(target), reference.output_name)
    return substitute(text, values)


def runbook_html(text: str) -> str:
    return markdown.markdown(text)


def render_manuals(
    registry: Registry,
    plan: ExecutionPlan,
    *,
    live: bool = False,
    directory_of: DirectoryLookup | None = None,
    fetch: OutputFetcher | None = None,
) -> RenderedManuals:
    """HTML for the pre and post run-books of every planned workspace."""
    if live and (directory_of is None or fetch is None):
        raise ValueError("live rendering needs a directory lookup and a fetcher")
    manuals: RenderedManuals = {}
    for root in plan.workspaces():
        workspace = registry.workspace(root)
        rendered: list[str | None] = []
        for text, file_name in (
            (workspace.pre_runbook, "PreManual.md"),
            (workspace.post_runbook, "PostManual.md"),
        ):
            if not text:
                rendered.append(None)
                continue
            if live:
                text = render_runbook_live(
                    text,
                    registry=registry,
                    owner=root,
                    declaring_file=file_name,
                    directory_of=directory_of,
                    fetch=fetch,
                )
            rendered.append(runbook_html(text))
        manuals[root] = (rendered[0], rendered[1])
    return manuals


def render_plan_html(
    plan: ExecutionPlan,
    manuals: RenderedManuals | None = None,
    *,
    apply_command: str = "terraform apply",
) -> str:
    manuals = manuals or {}
    lines = [
        "<!doctype html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="utf-8">',
        "  <title>Execution Plan</title>",
        "</head>",
        "<body>",
    ]
    for tier_index, tier in enumerate(plan):
        lines.append(f"  <h1>Tier {tier_index}</h1>")
        for root in tier:
            pre, post = manuals.get(root, (None, None))
            lines.append(f"  <h2>Workspace <code>{html.escape(root)}</code></h2>")
            if pre:
                lines.append("  <h3>Manual Pre-Work</h3>")
                lines.append(pre)
            lines.append("  <h3>Terraform</h3>")
            lines.append(
                f"  <code>(cd {html.escape(root)} && {html.escape(apply_command)})</code>"
            )
            if post:
                lines.append("  <h3>Manual Post-Work</h3>")
                lines.append(post)
    lines.extend(["</body>", "</html>"])
    return "\n".join(lines)
