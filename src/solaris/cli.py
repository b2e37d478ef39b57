from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional

import typer

from solaris import __version__
from solaris.config import (
    DEFAULT_TERRAFORM_BINARY,
    as_bool,
    as_positive_int,
    ignore_patterns,
    merge_payload,
    normalize_name_list,
    plan_defaults,
    solaris_defaults,
    split_patterns,
)
from solaris.exceptions import SolarisError
from solaris.graph_render import RENDER_HINT, render_workspaces, render_workspaces_detailed
from solaris.lint import lint as lint_registry
from solaris.plan_render import (
    OutputFetcher,
    render_manuals,
    render_plan_html,
    terraform_output_fetcher,
)
from solaris.planner import plan as plan_registry
from solaris.registry import Registry, build_registry
from solaris.resolver import resolve
from solaris.schema import plan_dto, registry_dto
from solaris.terraform import TerraformExtractor

app = typer.Typer(
    add_completion=False,
    help="Handle dependencies between multiple terraform workspaces.",
)
logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class GlobalOptions:
    base: Path
    ignore: tuple[str, ...]
    jobs: int
    config: Optional[Path] = None


def _split_csv_entries(entries: List[str]) -> list[str]:
    merged: list[str] = []
    for entry in entries:
        merged.extend([part.strip() for part in entry.split(",") if part.strip()])
    return merged


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


@contextmanager
def _fatal_errors() -> Iterator[None]:
    try:
        yield
    except SolarisError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def _options(ctx: typer.Context) -> GlobalOptions:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get("options")
        if isinstance(candidate, GlobalOptions):
            return candidate
    return GlobalOptions(base=Path("."), ignore=(), jobs=1)


def _context_output_fetcher(ctx: typer.Context, binary: str) -> OutputFetcher:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get("output_fetcher")
        if callable(candidate):
            return candidate
    return terraform_output_fetcher(binary)


def load_registry(options: GlobalOptions) -> tuple[Registry, TerraformExtractor]:
    """Extract, build and resolve the workspaces below ``options.base``."""
    extractor = TerraformExtractor(
        base=options.base, ignore=options.ignore, jobs=options.jobs
    )
    extraction = extractor.extract()
    logger.debug(
        "extracted %d workspaces with ignore patterns %s",
        len(extraction.results),
        list(options.ignore),
    )
    registry = resolve(build_registry(extraction.results, extraction.runbooks))
    return registry, extractor


@app.callback()
def main(
    ctx: typer.Context,
    base: Path = typer.Option(Path("."), "--base", "-b", help="The base directory."),
    ignore: Optional[List[str]] = typer.Option(
        None,
        "--ignore",
        "-i",
        help="Ignore subdirectories matching these regular expressions (repeatable, comma separated outside {m,n}).",
    ),
    debug: Optional[bool] = typer.Option(
        None, "--debug/--no-debug", help="Write debug output to STDERR."
    ),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", help="Parallel workers used to read workspaces."
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to solaris.toml (defaults to <base>/solaris.toml)."
    ),
) -> None:
    defaults = solaris_defaults(root=base, config_path=config)
    merged = merge_payload(
        {
            "ignore": (
                [pattern for entry in ignore for pattern in split_patterns(entry)]
                if ignore
                else None
            ),
            "debug": debug,
            "jobs": jobs,
        },
        defaults,
    )
    _configure_logging(as_bool(merged.get("debug")))
    obj = dict(ctx.obj) if isinstance(ctx.obj, Mapping) else {}
    obj["options"] = GlobalOptions(
        base=base,
        ignore=tuple(ignore_patterns(merged)),
        jobs=as_positive_int(merged.get("jobs")),
        config=config,
    )
    ctx.obj = obj


@app.command("graph")
def graph(
    ctx: typer.Context,
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Draw a detailed graph."),
) -> None:
    """Generate dot output of terraform workspace dependencies."""
    with _fatal_errors():
        registry, _ = load_registry(_options(ctx))
    if detailed:
        typer.echo(render_workspaces_detailed(registry))
    else:
        typer.echo(render_workspaces(registry))
    typer.echo("")
    typer.echo(RENDER_HINT)


@app.command("lint")
def lint(ctx: typer.Context) -> None:
    """Lint terraform workspace dependencies."""
    with _fatal_errors():
        registry, _ = load_registry(_options(ctx))
    for category, findings in lint_registry(registry).items():
        typer.echo(f"{category}:")
        for finding in findings:
            typer.echo(f"   {finding}")


@app.command("json")
def json_command(
    ctx: typer.Context,
    compact: bool = typer.Option(False, "--compact", "-c", help="Print compact JSON."),
) -> None:
    """Print a json representation of terraform workspace dependencies."""
    with _fatal_errors():
        registry, _ = load_registry(_options(ctx))
    payload = [workspace.model_dump() for workspace in registry_dto(registry)]
    if compact:
        typer.echo(json.dumps(payload, separators=(",", ":")))
    else:
        typer.echo(json.dumps(payload, indent=4))


@app.command("plan")
def plan(
    ctx: typer.Context,
    roots: Optional[List[str]] = typer.Option(
        None,
        "--roots",
        "-r",
        help="Plan only these workspaces and the workspaces depending on them.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print as JSON."),
    render: bool = typer.Option(
        False,
        "--render",
        "-m",
        help="Render pre-/post manuals with live outputs (requires terraform).",
    ),
    terraform: Optional[str] = typer.Option(
        None, "--terraform", help="Terraform binary used by --render."
    ),
) -> None:
    """Print execution order of terraform workspaces."""
    options = _options(ctx)
    defaults = plan_defaults(root=options.base, config_path=options.config)
    merged = merge_payload(
        {
            "roots": _split_csv_entries(roots) if roots else None,
            "terraform": terraform,
        },
        defaults,
    )
    binary = str(merged.get("terraform") or DEFAULT_TERRAFORM_BINARY)
    with _fatal_errors():
        registry, extractor = load_registry(options)
        execution_plan = plan_registry(
            registry, normalize_name_list(merged.get("roots"))
        )
        manuals = render_manuals(
            registry,
            execution_plan,
            live=render,
            directory_of=extractor.directory_of,
            fetch=_context_output_fetcher(ctx, binary),
        )
    if json_output:
        payload = plan_dto(registry, execution_plan, manuals).model_dump()
        typer.echo(json.dumps(payload["tiers"], indent=4))
    else:
        typer.echo(render_plan_html(execution_plan, manuals))


@app.command("version")
def version() -> None:
    """Print version info."""
    typer.echo(f"solaris {__version__}")
