"""vislens command line entrypoint."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable, Coroutine
from pathlib import Path
from typing import Any

import click
import structlog
from pydantic import ValidationError

from vislens.capture.browser import BrowserManager
from vislens.config.logging import setup_logging
from vislens.config.settings import Settings, get_settings
from vislens.engine import VisualRegressionEngine
from vislens.exceptions import VisLensError
from vislens.models.domain import CaptureTarget, DiffOptions, FormatOptions
from vislens.storage.object_store import create_object_store
from vislens.types import ArtifactRole, ImageFormat

logger = structlog.get_logger(__name__)

EXIT_REGRESSION = 1
EXIT_ERROR = 2


def _echo(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return asyncio.run(coro)
    except VisLensError as e:
        logger.error("command_failed", **e.context())
        _echo({"error": type(e).__name__, "message": str(e)})
        sys.exit(EXIT_ERROR)
    except ValueError as e:
        # Invalid input that got past option parsing; never reported as a regression
        logger.error("command_failed", error=type(e).__name__, message=str(e))
        _echo({"error": type(e).__name__, "message": str(e)})
        sys.exit(EXIT_ERROR)


async def _with_engine(
    settings: Settings,
    url: str | None,
    action: Callable[[VisualRegressionEngine], Awaitable[Any]],
) -> Any:
    store = create_object_store(settings)
    if url is None:
        return await action(VisualRegressionEngine(store, settings=settings))
    async with BrowserManager(headless=settings.headless) as browser:
        surface = await browser.open_surface(
            url, settings.viewport_width, settings.viewport_height
        )
        return await action(VisualRegressionEngine(store, surface=surface, settings=settings))


def _target(selector: str | None, padding: int, full_page: bool) -> CaptureTarget:
    try:
        return CaptureTarget(selector=selector, padding=padding, full_surface=full_page)
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise click.UsageError(f"Invalid capture target: {messages}") from e


def _parse_breakpoints(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> list[int] | None:
    if value is None:
        return None
    widths = []
    for part in value.split(","):
        try:
            width = int(part.strip())
        except ValueError:
            raise click.BadParameter(f"{part!r} is not a width in pixels") from None
        if width <= 0:
            raise click.BadParameter(f"widths must be positive, got {width}")
        widths.append(width)
    return widths


def _target_options(func: Callable[..., Any]) -> Callable[..., Any]:
    func = click.option("--full-page", is_flag=True, help="Capture the whole page")(func)
    func = click.option(
        "--padding", default=0, type=click.IntRange(min=0), help="Pixels around the element"
    )(func)
    func = click.option("--selector", "-s", default=None, help="CSS selector to capture")(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Visual regression testing: capture, compare against baselines, report regions."""
    settings = get_settings()
    setup_logging("DEBUG" if verbose else settings.log_level, json_output=settings.json_logs)
    ctx.obj = settings


@cli.command()
@click.argument("url")
@click.option("--name", "-n", default=None, help="Store as a current screenshot")
@_target_options
@click.option("--format", "fmt", type=click.Choice([f.value for f in ImageFormat]), default="png")
@click.option("--quality", type=click.IntRange(1, 100), default=None)
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None)
@click.pass_obj
def screenshot(
    settings: Settings,
    url: str,
    name: str | None,
    selector: str | None,
    padding: int,
    full_page: bool,
    fmt: str,
    quality: int | None,
    output: Path | None,
) -> None:
    """Capture URL (viewport, full page or element)."""
    target = _target(selector, padding, full_page)
    options = FormatOptions(format=ImageFormat(fmt), quality=quality)

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.take_screenshot(target, options, name=name)

    buffer = _run(_with_engine(settings, url, action))
    if output is not None:
        buffer.to_image().save(output)
    _echo({"name": name, "width": buffer.width, "height": buffer.height, "output": output})


@cli.command()
@click.argument("url")
@click.option("--name", "-n", required=True)
@click.option(
    "--breakpoints",
    "-b",
    default=None,
    callback=_parse_breakpoints,
    help="Comma-separated widths",
)
@_target_options
@click.pass_obj
def responsive(
    settings: Settings,
    url: str,
    name: str,
    breakpoints: list[int] | None,
    selector: str | None,
    padding: int,
    full_page: bool,
) -> None:
    """Capture URL at several viewport widths."""
    target = _target(selector, padding, full_page)

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.take_responsive_screenshots(target, breakpoints, name=name)

    shots = _run(_with_engine(settings, url, action))
    _echo({f"{w}px": f"{name}_{w}px" for w in shots})


@cli.command()
@click.argument("url")
@click.option("--name", "-n", required=True, help="Test name of the baseline")
@_target_options
@click.option("--threshold", "-t", type=click.FloatRange(0.0, 1.0), default=None)
@click.option("--include-aa", is_flag=True, help="Count anti-aliased pixels as differences")
@click.pass_obj
def compare(
    settings: Settings,
    url: str,
    name: str,
    selector: str | None,
    padding: int,
    full_page: bool,
    threshold: float | None,
    include_aa: bool,
) -> None:
    """Compare URL against its baseline; exit 1 on regression."""
    options = DiffOptions(
        threshold=settings.threshold if threshold is None else threshold,
        include_anti_aliasing=include_aa or settings.include_anti_aliasing,
        diff_color=settings.diff_color,
    )
    target = _target(selector, padding, full_page)

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.compare_with_baseline(name, target, options)

    verdict = _run(_with_engine(settings, url, action))
    _echo({"name": name, **verdict.summary()})
    if verdict.is_different:
        sys.exit(EXIT_REGRESSION)


@cli.command()
@click.argument("url")
@click.option("--name", "-n", required=True)
@_target_options
@click.pass_obj
def update(
    settings: Settings,
    url: str,
    name: str,
    selector: str | None,
    padding: int,
    full_page: bool,
) -> None:
    """Capture URL and replace the baseline for NAME."""
    target = _target(selector, padding, full_page)

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.update_baseline(name, target)

    record = _run(_with_engine(settings, url, action))
    _echo(record.model_dump(mode="json"))


@cli.command(name="list")
@click.pass_obj
def list_cmd(settings: Settings) -> None:
    """List stored baselines, current screenshots and diffs."""

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.list_screenshots()

    _echo(_run(_with_engine(settings, None, action)))


@cli.command()
@click.argument("name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in ArtifactRole]),
    default=ArtifactRole.BASELINE.value,
)
@click.pass_obj
def delete(settings: Settings, name: str, role: str) -> None:
    """Delete a stored screenshot."""

    async def action(engine: VisualRegressionEngine) -> Any:
        return await engine.delete_screenshot(name, role)

    deleted = _run(_with_engine(settings, None, action))
    _echo({"name": name, "role": role, "deleted": deleted})


if __name__ == "__main__":
    cli()
