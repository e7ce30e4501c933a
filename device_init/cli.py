"""Thin CLI wrapper for device_init.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, cast

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn

from device_init import __version__
from device_init.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="device-init",
    help="Device image configuration - write config.json and network settings, burn drives",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route device_init logs to stderr through rich."""
    handler = RichHandler(console=err_console, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger("device_init")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"device-init version {__version__}")
        raise typer.Exit()


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
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Device image configuration - write config.json and network settings, burn drives."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)


def _print_json(data: Any) -> None:
    console.print(
        json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
    )


def _parse_options(values: list[str] | None) -> dict[str, str]:
    options: dict[str, str] = {}
    for value in values or []:
        key, sep, option = value.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid option {value!r}, expected KEY=VALUE[/red]")
            raise typer.Exit(code=1)
        options[key] = option
    return options


def _load_descriptor(
    manifest_path: Path | None, device_type: str | None, settings: Settings
) -> Any:
    import yaml
    from pydantic import ValidationError

    from device_init.manifest.catalog import CatalogError, fetch_device_type
    from device_init.manifest.io import load_manifest

    if (manifest_path is None) == (device_type is None):
        console.print("[red]Pass exactly one of --manifest or --device-type[/red]")
        raise typer.Exit(code=1)

    if manifest_path is not None:
        if not manifest_path.exists():
            console.print(f"[red]File not found: {manifest_path}[/red]")
            raise typer.Exit(code=1)
        try:
            return load_manifest(manifest_path)
        except ValidationError as e:
            console.print("[red]Invalid manifest:[/red]")
            console.print(str(e), markup=False)
            raise typer.Exit(code=1) from None
        except (ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Invalid manifest: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None

    try:
        return fetch_device_type(cast(str, device_type), settings=settings)
    except CatalogError as e:
        console.print(f"[red]Could not fetch device type {device_type}: {e.message}[/red]")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None


def _network_options(
    network: str | None, wifi_ssid: str | None, wifi_key: str | None
) -> dict[str, str]:
    options = {}
    if network is not None:
        options["network"] = network
    if wifi_ssid is not None:
        options["wifiSsid"] = wifi_ssid
    if wifi_key is not None:
        options["wifiKey"] = wifi_key
    return options


def _consume(stream: Any, title: str) -> None:
    """Drain a progress stream, rendering its events."""
    from device_init.operations.events import (
        BurnEvent,
        ErrorEvent,
        OutputEvent,
        StateEvent,
    )
    from device_init.types import EventKind

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        burn_task = None
        for event in stream:
            if isinstance(event, StateEvent):
                console.print(
                    f"  {event.operation.command}: {event.percentage:.0f}% of operations done"
                )
            elif isinstance(event, OutputEvent):
                target = console if event.kind == EventKind.STDOUT else err_console
                target.print(event.data, end="", markup=False, highlight=False)
            elif isinstance(event, BurnEvent):
                if burn_task is None:
                    burn_task = progress.add_task("Burning", total=100)
                progress.update(burn_task, completed=event.progress.percentage)
            elif isinstance(event, ErrorEvent):
                console.print(f"[red]✗ {title} failed: {escape(str(event.error))}[/red]")
                raise typer.Exit(code=1)

    console.print(f"[green]✓ {title} finished[/green]")


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, highlight=False)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Catalog:[/bold]")
        console.print(f"  API URL:             {settings.api_url}")
        console.print(f"  Request timeout:     {settings.request_timeout}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Script timeout:      {settings.script_timeout}")
        console.print()
        console.print("[bold]Burning:[/bold]")
        console.print(f"  Verification mode:   {settings.verification_mode}")
        console.print(f"  Block size:          {settings.burn_block_size}")
        console.print(f"  Check mounts:        {settings.check_mount}")
        console.print(f"  Regular file drives: {settings.allow_regular_file_drives}")


@app.command()
def manifest(
    image: Annotated[str, typer.Argument(help="Path to the image")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the device type manifest embedded in an image."""
    from device_init.service import get_image_manifest

    descriptor = get_image_manifest(image)
    if descriptor is None:
        console.print(f"[red]No device type manifest found in {image}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        _print_json(descriptor.model_dump(mode="json", by_alias=True, exclude_none=True))
    else:
        console.print(f"[bold]Device type:[/bold] {descriptor.slug}")
        console.print(f"  Name:          {descriptor.name}")
        console.print(f"  Architecture:  {descriptor.arch}")
        console.print(f"  Configurable:  {descriptor.configuration is not None}")
        console.print(f"  Initializable: {descriptor.initialization is not None}")


@app.command("os-version")
def os_version(
    image: Annotated[str, typer.Argument(help="Path to the image")],
    manifest_path: Annotated[
        Path | None,
        typer.Option("--manifest", "-m", help="Device type manifest file"),
    ] = None,
) -> None:
    """Show the OS version installed in an image."""
    from device_init.service import get_image_os_version

    descriptor = None
    if manifest_path is not None:
        descriptor = _load_descriptor(manifest_path, None, get_settings())

    version = get_image_os_version(image, descriptor)
    if version is None:
        console.print(f"[yellow]Could not determine the OS version of {image}[/yellow]")
        raise typer.Exit(code=1)
    console.print(version)


@app.command()
def schema(
    manifest_path: Annotated[
        Path,
        typer.Option("--manifest", "-m", help="Device type manifest file"),
    ],
    generation: Annotated[
        int,
        typer.Option("--generation", "-g", min=1, max=2, help="OS generation (1 or 2)"),
    ],
    network: Annotated[
        str | None,
        typer.Option("--network", help="Network type (ethernet or wifi)"),
    ] = None,
    wifi_ssid: Annotated[str | None, typer.Option("--wifi-ssid", help="Wifi SSID")] = None,
    wifi_key: Annotated[str | None, typer.Option("--wifi-key", help="Wifi passphrase")] = None,
) -> None:
    """Show the network merge schema for a manifest."""
    from pydantic import ValidationError

    from device_init.manifest.schema import ManifestError
    from device_init.network.builder import build_schema
    from device_init.network.models import NetworkAnswers
    from device_init.types import OsGeneration

    descriptor = _load_descriptor(manifest_path, None, get_settings())
    try:
        answers = NetworkAnswers.model_validate(_network_options(network, wifi_ssid, wifi_key))
        merge_schema = build_schema(descriptor, answers, OsGeneration(generation))
    except ValidationError as e:
        console.print("[red]Invalid network answers:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except ManifestError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    if merge_schema is None:
        console.print("[yellow]No network configuration needed[/yellow]")
        return
    _print_json(merge_schema.model_dump(mode="json", by_alias=True, exclude_none=True))


@app.command()
def configure(
    image: Annotated[str, typer.Argument(help="Path to the image")],
    manifest_path: Annotated[
        Path | None,
        typer.Option("--manifest", "-m", help="Device type manifest file"),
    ] = None,
    device_type: Annotated[
        str | None,
        typer.Option("--device-type", "-d", help="Device type slug to fetch"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="config.json contents (JSON or YAML)"),
    ] = None,
    network: Annotated[
        str | None,
        typer.Option("--network", help="Network type (ethernet or wifi)"),
    ] = None,
    wifi_ssid: Annotated[str | None, typer.Option("--wifi-ssid", help="Wifi SSID")] = None,
    wifi_key: Annotated[str | None, typer.Option("--wifi-key", help="Wifi passphrase")] = None,
    option: Annotated[
        list[str] | None,
        typer.Option("--option", "-o", help="Operation option KEY=VALUE (can be repeated)"),
    ] = None,
) -> None:
    """Write config.json and network settings into an image."""
    import yaml
    from pydantic import ValidationError

    from device_init.manifest.io import load_config_payload
    from device_init.manifest.schema import ManifestError
    from device_init.service import configure as configure_image

    settings = get_settings()
    descriptor = _load_descriptor(manifest_path, device_type, settings)

    payload: dict[str, Any] = {}
    if config_path is not None:
        if not config_path.exists():
            console.print(f"[red]File not found: {config_path}[/red]")
            raise typer.Exit(code=1)
        try:
            payload = load_config_payload(config_path)
        except (ValueError, yaml.YAMLError) as e:
            console.print(f"[red]Invalid config: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None

    options = {**_parse_options(option), **_network_options(network, wifi_ssid, wifi_key)}
    try:
        stream = configure_image(image, descriptor, payload, options, settings=settings)
    except ValidationError as e:
        console.print("[red]Invalid network answers:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None
    except ManifestError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    _consume(stream, "Configuration")


@app.command()
def initialize(
    image: Annotated[str, typer.Argument(help="Path to the image")],
    manifest_path: Annotated[
        Path | None,
        typer.Option("--manifest", "-m", help="Device type manifest file"),
    ] = None,
    device_type: Annotated[
        str | None,
        typer.Option("--device-type", "-d", help="Device type slug to fetch"),
    ] = None,
    drive: Annotated[
        str | None,
        typer.Option("--drive", help="Drive to burn (e.g., /dev/sdX)"),
    ] = None,
    option: Annotated[
        list[str] | None,
        typer.Option("--option", "-o", help="Operation option KEY=VALUE (can be repeated)"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts"),
    ] = False,
) -> None:
    """Run a device type's initialization operations, e.g. burn a drive.

    Requires an explicit drive path (e.g., /dev/sdb, /dev/mmcblk0) for
    device types that burn their image.
    """
    from device_init.manifest.schema import BurnOperation, ManifestError
    from device_init.service import initialize as initialize_image

    settings = get_settings()
    descriptor = _load_descriptor(manifest_path, device_type, settings)

    options: dict[str, Any] = _parse_options(option)
    if drive is not None:
        options["drive"] = drive

    try:
        initialization = descriptor.require_initialization()
    except ManifestError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(code=1) from None

    burns = any(
        isinstance(operation, BurnOperation) and operation.applies_to(options)
        for operation in initialization.operations
    )
    if burns and drive is not None and not yes:
        console.print(f"[bold red]WARNING:[/bold red] This will OVERWRITE {drive}")
        console.print(f"  Image: {image}")
        confirm = typer.confirm("Are you sure you want to continue?", default=False)
        if not confirm:
            console.print("[yellow]Aborted[/yellow]")
            raise typer.Exit(code=0)

    _consume(initialize_image(image, descriptor, options, settings=settings), "Initialization")


if __name__ == "__main__":
    app()
