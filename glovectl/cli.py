"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

import typer

from glovectl.core.errors import GlovectlError
from glovectl.core.profile_loader import DEFAULT_PROFILE_ID
from glovectl.core.service import GloveService

app = typer.Typer(help="BlueBuzzah haptic glove control over Bluetooth LE")


def _build_service(ctx: typer.Context) -> GloveService:
    profile_id = ctx.obj or DEFAULT_PROFILE_ID
    service = GloveService(profile_id=profile_id)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option(DEFAULT_PROFILE_ID, "--profile", help="Device profile ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = profile


@app.command("profiles")
def list_profiles(ctx: typer.Context) -> None:
    """List available device profiles."""
    try:
        service = _build_service(ctx)
        for profile in service.list_profiles():
            typer.echo(f"{profile.id}: {profile.name} (name prefix '{profile.name_prefix}')")
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    ctx: typer.Context,
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Scan for advertising gloves."""
    try:
        service = _build_service(ctx)
        devices = asyncio.run(service.scan(timeout_s=timeout))
        if not devices:
            typer.echo("No gloves found")
            return

        for device in devices:
            typer.echo(f"{device.id} {device.name} rssi={device.signal_strength}")
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("patterns")
def list_patterns(ctx: typer.Context) -> None:
    """List built-in and saved vibration patterns."""
    try:
        service = _build_service(ctx)
        for pattern in service.list_patterns():
            mode = "continuous" if pattern.is_continuous else f"pulsed every {pattern.interval_ms}ms"
            typer.echo(
                f"{pattern.name}: intensity={pattern.intensity} duration={pattern.duration_ms}ms "
                f"frequency={pattern.frequency_hz}Hz {mode}"
            )
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("vibrate")
def vibrate(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Device id, address or partial name"),
    pattern: str = typer.Option("Gentle", "--pattern", "-p", help="Pattern name"),
    seconds: float = typer.Option(3.0, "--seconds", help="How long to vibrate"),
    intensity: int | None = typer.Option(None, "--intensity", min=0, max=100, help="Override intensity"),
    scan_timeout: float | None = typer.Option(None, "--scan-timeout", help="Scan duration in seconds"),
) -> None:
    """Connect to a glove and run a pattern for a number of seconds."""

    async def _run(service: GloveService) -> None:
        chosen = service.find_pattern(pattern)
        if intensity is not None:
            chosen.intensity = intensity
        target = await service.connect(device, scan_timeout_s=scan_timeout)
        try:
            if not await service.start(chosen):
                raise GlovectlError(f"Glove {target.id} rejected pattern '{chosen.name}'")
            typer.echo(f"Vibrating {target.name} with {chosen.name} for {seconds:g}s")
            await asyncio.sleep(seconds)
            if not await service.stop():
                typer.echo("Warning: stop command was not acknowledged", err=True)
        finally:
            await service.disconnect()

    try:
        asyncio.run(_run(_build_service(ctx)))
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("battery")
def battery(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Device id, address or partial name"),
    scan_timeout: float | None = typer.Option(None, "--scan-timeout", help="Scan duration in seconds"),
) -> None:
    """Read the glove battery level."""

    async def _run(service: GloveService) -> tuple[str, int | None]:
        target = await service.connect(device, scan_timeout_s=scan_timeout)
        try:
            return target.name, await service.battery_level()
        finally:
            await service.disconnect()

    try:
        name, level = asyncio.run(_run(_build_service(ctx)))
        if level is None:
            typer.echo(f"Battery level unavailable for {name}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"{name}: battery {level}%")
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("test")
def test_connection(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Device id, address or partial name"),
    scan_timeout: float | None = typer.Option(None, "--scan-timeout", help="Scan duration in seconds"),
) -> None:
    """Send a short test pulse to a glove."""

    async def _run(service: GloveService) -> bool:
        await service.connect(device, scan_timeout_s=scan_timeout)
        try:
            return await service.test_connection()
        finally:
            await service.disconnect()

    try:
        ok = asyncio.run(_run(_build_service(ctx)))
        if not ok:
            typer.echo("Test pulse failed", err=True)
            raise typer.Exit(code=1)
        typer.echo("Test pulse sent")
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("history")
def history(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", min=0, help="Number of sessions to show (0 for all)"),
) -> None:
    """Show recent therapy sessions."""
    try:
        service = _build_service(ctx)
        sessions = service.session_history(limit)
        if not sessions:
            typer.echo("No sessions recorded")
            return

        for session in sessions:
            status = "completed" if session.is_completed else "interrupted"
            minutes = session.duration.total_seconds() / 60
            typer.echo(
                f"{session.start_time:%Y-%m-%d %H:%M} {session.pattern_name or '-'} "
                f"{minutes:.1f} min {status}"
            )
    except GlovectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
