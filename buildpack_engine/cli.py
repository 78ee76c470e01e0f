"""Thin CLI wrapper for buildpack_engine.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from buildpack_engine import __version__
from buildpack_engine.buildpack import Buildpack
from buildpack_engine.buildpacks import load_buildpacks
from buildpack_engine.config import Settings, get_settings, print_settings_json
from buildpack_engine.context import BuildContext, new_context
from buildpack_engine.layers.manager import LayerManager
from buildpack_engine.lifecycle.orchestrator import BuildError, build, detect
from buildpack_engine.plan.resolver import DetectionError, PlanConflictError

app = typer.Typer(
    name="bpengine",
    help="Buildpack engine - detect, build and cache application layers",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

BuildpackOption = Annotated[
    list[str] | None,
    typer.Option(
        "--buildpack",
        "-b",
        help="Built-in buildpack name or module:attr (repeatable, in order)",
    ),
]
LayersDirOption = Annotated[
    Path | None,
    typer.Option("--layers-dir", "-l", help="Layer storage root"),
]
EnvOption = Annotated[
    list[str] | None,
    typer.Option("--env", "-e", help="Extra environment variable KEY=VALUE (repeatable)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"buildpack-engine version {__version__}")
        raise typer.Exit()


def setup_logging(level: str) -> None:
    """Send engine logs to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Buildpack engine - detect, build and cache application layers."""


def _settings(app_dir: Path | None = None, layers_dir: Path | None = None) -> Settings:
    settings = get_settings()
    updates: dict[str, Path] = {}
    if app_dir is not None:
        updates["app_dir"] = app_dir
    if layers_dir is not None:
        updates["layers_dir"] = layers_dir
    return settings.model_copy(update=updates) if updates else settings


def _parse_env(pairs: list[str] | None) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            console.print(f"[red]Invalid --env value (expected KEY=VALUE): {pair}[/red]")
            raise typer.Exit(code=1)
        env[name] = value
    return env


def _prepare(
    app_dir: Path,
    layers_dir: Path | None,
    buildpack_specs: list[str] | None,
    env_pairs: list[str] | None,
) -> tuple[list[Buildpack], BuildContext]:
    if not app_dir.is_dir():
        console.print(f"[red]Application directory not found: {app_dir}[/red]")
        raise typer.Exit(code=1)

    settings = _settings(app_dir=app_dir, layers_dir=layers_dir)
    setup_logging(settings.log_level)

    try:
        buildpacks = load_buildpacks(buildpack_specs)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    env = dict(os.environ)
    env.update(_parse_env(env_pairs))
    ctx = new_context(app_root=app_dir, env=env, settings=settings)
    return buildpacks, ctx


@app.command()
def config(json_output: JsonOption = False) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print_json(print_settings_json(settings))
    else:
        timeout_display = (
            f"{settings.exec_timeout}" if settings.exec_timeout else "(no timeout)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Layers directory:    {settings.layers_dir}")
        console.print(f"  App directory:       {settings.app_dir}")
        console.print(f"  Manifest name:       {settings.manifest_name}")
        console.print()
        console.print("[bold]Plan:[/bold]")
        console.print(f"  Platform roots:      {', '.join(settings.platform_roots)}")
        console.print()
        console.print("[bold]Execution:[/bold]")
        console.print(f"  Exec timeout:        {timeout_display}")
        console.print(f"  Stderr tail lines:   {settings.stderr_tail_lines}")
        console.print(f"  Log level:           {settings.log_level}")


@app.command("detect")
def detect_cmd(
    app_dir: Annotated[Path, typer.Argument(help="Application source directory")],
    buildpack_specs: BuildpackOption = None,
    env_pairs: EnvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Run detection and show the resolved build plan."""
    buildpacks, ctx = _prepare(app_dir, None, buildpack_specs, env_pairs)

    try:
        plan = detect(buildpacks, ctx)
    except (DetectionError, PlanConflictError) as e:
        console.print(f"[red]Detection failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(data=plan.to_dict())
        return

    console.print(f"[bold]Active buildpacks ({len(plan.order)}):[/bold]")
    for name in plan.order:
        entry = plan.entry(name)
        provides = ", ".join(p.name for p in entry.provides) or "-"
        console.print(f"  [green]{name}[/green]")
        console.print(f"    Provides: {provides}")
    for record in plan.records:
        if not plan.is_active(record.buildpack):
            console.print(
                f"  [dim]{record.buildpack}: {record.result.status.value}"
                f"{' - ' + record.result.diagnostic if record.result.diagnostic else ''}[/dim]"
            )
    for warning in plan.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command("build")
def build_cmd(
    app_dir: Annotated[Path, typer.Argument(help="Application source directory")],
    layers_dir: LayersDirOption = None,
    buildpack_specs: BuildpackOption = None,
    env_pairs: EnvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Detect and build an application into layers."""
    buildpacks, ctx = _prepare(app_dir, layers_dir, buildpack_specs, env_pairs)

    try:
        plan = detect(buildpacks, ctx)
        report = build(buildpacks, ctx, plan)
    except (DetectionError, PlanConflictError) as e:
        console.print(f"[red]Detection failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    except BuildError as e:
        console.print(f"[red]Build failed: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print_json(data=report.manifest)
        return

    console.print(f"[bold]Built {len(plan.order)} buildpack(s)[/bold]")
    for layer in report.layers:
        hit = " (cached)" if layer.cache_hit else ""
        flags = escape(f"[{', '.join(layer.flags)}]")
        console.print(f"  [green]{layer.id}[/green] {flags}{hit}")
    for process_type, command in report.processes.items():
        console.print(f"  Process {process_type}: {escape(command)}")
    console.print(f"Manifest: {report.manifest_path}")


@app.command("layers")
def layers_cmd(
    layers_dir: LayersDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """List layers persisted in layer storage."""
    settings = _settings(layers_dir=layers_dir)
    summaries = LayerManager(settings.layers_dir).list_persisted()

    if not summaries:
        if json_output:
            console.print("[]", markup=False)
        else:
            console.print("[yellow]No layers found[/yellow]")
        return

    if json_output:
        console.print_json(
            data=[
                {"id": s.id, "flags": s.flags, "cache_key": s.cache_key}
                for s in summaries
            ]
        )
        return

    console.print(f"[bold]Found {len(summaries)} layer(s):[/bold]")
    console.print()
    for s in summaries:
        console.print(f"  [green]{s.id}[/green]")
        console.print(f"    Flags: {', '.join(s.flags)}")
        console.print(f"    Cache key: {s.cache_key or '-'}")


if __name__ == "__main__":
    app()
