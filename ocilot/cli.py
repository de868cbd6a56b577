"""Thin CLI wrapper for ocilot.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from enum import Enum
from typing import Annotated, Any, NoReturn

import typer
import yaml
from rich.console import Console

from ocilot import __version__
from ocilot.builds import create_builder, make_build
from ocilot.config import Settings, get_settings, print_settings_json
from ocilot.errors import InvalidInputError, OcilotError, exit_code_for
from ocilot.logs import configure_logging, report_failure, verbosity_to_level
from ocilot.oci import DirectoryImageCache, RegistryClient, create_http_client

app = typer.Typer(
    name="ocilot",
    help="Ocilot - build OCI images from a base image and local files",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Rendering of command results."""

    HUMAN = "human"
    JSON = "json"
    YAML = "yaml"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ocilot version {__version__}")
        raise typer.Exit()


def _settings(ctx: typer.Context) -> Settings:
    if isinstance(ctx.obj, Settings):
        return ctx.obj
    return get_settings()


def _fail(error: OcilotError, settings: Settings) -> NoReturn:
    """Report an error and exit with the code derived from it."""
    if not isinstance(error, InvalidInputError):
        report_failure(error, settings.log_file)
    err_console.print(str(error), style="red", markup=False, highlight=False)
    raise typer.Exit(code=exit_code_for(error))


def _emit(data: Any, output: OutputFormat) -> None:
    """Print machine-readable output without console wrapping."""
    if output is OutputFormat.YAML:
        typer.echo(yaml.safe_dump(data, sort_keys=False), nl=False)
    else:
        typer.echo(json.dumps(data, indent=2))


@app.callback()
def main(
    ctx: typer.Context,
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
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="More output (repeatable)"),
    ] = 0,
    quiet: Annotated[
        int,
        typer.Option("--quiet", "-q", count=True, help="Less output (repeatable)"),
    ] = 0,
) -> None:
    """Ocilot - build OCI images from a base image and local files."""
    settings = get_settings()
    try:
        level = verbosity_to_level(
            verbose, quiet, default=logging.getLevelName(settings.log_level)
        )
    except InvalidInputError as e:
        raise typer.BadParameter(e.message) from None
    configure_logging(level, settings.log_file, console=err_console)
    ctx.obj = settings


@app.command()
def build(
    ctx: typer.Context,
    base: Annotated[str, typer.Argument(help="Base image reference")],
    image: Annotated[
        str,
        typer.Option("--image", "-i", help="Name of the image to build"),
    ],
    artifacts: Annotated[
        list[str] | None,
        typer.Argument(help="Artifacts as [ARCH:]FROM[:TO]"),
    ] = None,
    tags: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Tag of the built image (can be repeated)"),
    ] = None,
    archs: Annotated[
        list[str] | None,
        typer.Option("--arch", "-a", help="Target architecture (can be repeated)"),
    ] = None,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.HUMAN,
) -> None:
    """Build an image, reusing the cached one when no input changed."""
    settings = _settings(ctx)
    try:
        request = make_build(base, artifacts or [], image, tags or [], archs or [])
        with create_http_client(settings) as client:
            result = create_builder(settings, client).execute(request)
    except OcilotError as e:
        _fail(e, settings)

    if output is OutputFormat.HUMAN:
        if result.is_cached:
            console.print(f"[yellow]cached[/yellow] {result.digest}")
        else:
            console.print(f"[green]built[/green] {result.digest}")
    else:
        _emit({"outcome": result.outcome.value, "digest": result.digest}, output)


@app.command("list")
def list_images(
    ctx: typer.Context,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.HUMAN,
) -> None:
    """List images in the local cache."""
    settings = _settings(ctx)
    try:
        images = DirectoryImageCache(settings.cache_dir).list()
    except OcilotError as e:
        _fail(e, settings)

    if output is not OutputFormat.HUMAN:
        _emit(
            [
                {
                    "digest": i.digest,
                    "image": i.name.image,
                    "tags": sorted(i.name.tags),
                    "created": i.created.isoformat(),
                }
                for i in images
            ],
            output,
        )
        return

    if not images:
        console.print("[yellow]No cached images found[/yellow]")
        return

    console.print(f"[bold]Found {len(images)} cached image(s):[/bold]")
    console.print()
    for i in images:
        console.print(f"  [green]{i.name.image}[/green]")
        console.print(f"    Tags: {', '.join(sorted(i.name.tags))}")
        console.print(f"    Digest: {i.digest}")
        console.print(f"    Created: {i.created.isoformat()}")
        console.print()


@app.command()
def publish(
    ctx: typer.Context,
    image: Annotated[str, typer.Argument(help="Image reference to publish")],
) -> None:
    """Publish an image to its registry."""
    settings = _settings(ctx)
    try:
        with create_http_client(settings) as client:
            registry = RegistryClient(client, DirectoryImageCache(settings.cache_dir))
            registry.publish(image)
    except OcilotError as e:
        _fail(e, settings)


@app.command()
def config(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = _settings(ctx)
    if json_output:
        typer.echo(print_settings_json(settings))
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Cache directory:     {settings.cache_dir}")
        console.print(f"  Diagnostic log:      {settings.log_file}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Fetch timeout:       {settings.fetch_timeout}")
        insecure = ", ".join(settings.insecure_registries) or "(none)"
        console.print(f"  Insecure registries: {insecure}")


if __name__ == "__main__":
    app()
