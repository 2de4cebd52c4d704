"""
Command-line interface for forge3d.

Usage:
    forge3d generate "a low poly fox" --width 40 --height 60 --depth 30
    forge3d checkout price_onetime --user u_123
    forge3d plan u_123
    forge3d serve
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import get_config, load_config
from .models import GenerationResult, OutputFormat, UserIdentity
from .payments import GATE_MESSAGES
from .session import StudioController


app = typer.Typer(
    name="forge3d",
    help="Text/image to 3D model generation",
    add_completion=False,
)
console = Console()


def _print(msg: str, style: str = None):
    """Print with optional rich styling."""
    if style:
        console.print(msg, style=style)
    else:
        console.print(msg)


def _print_json(data: dict):
    """Print JSON output."""
    print(json.dumps(data, indent=2))


def _load(env_file: Optional[Path]):
    return load_config(env_file) if env_file else get_config()


# ─────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────

@app.command()
def generate(
    prompt: str = typer.Argument("", help="What to create"),
    width: str = typer.Option("", "--width", help="Width in mm"),
    height: str = typer.Option("", "--height", help="Height in mm"),
    depth: str = typer.Option("", "--depth", help="Depth in mm"),
    material: str = typer.Option("plastic", "--material", "-m", help="plastic, metal, wood, ceramic, resin"),
    supports: bool = typer.Option(False, "--supports", help="Enable print supports"),
    infill: str = typer.Option("20", "--infill", help="Infill percent (0-100)"),
    shell: str = typer.Option("1.2", "--shell", help="Shell thickness in mm"),
    image: Optional[Path] = typer.Option(None, "--image", "-i", help="Reference image file"),
    download: bool = typer.Option(False, "--download", help="Request a print-ready model"),
    user: Optional[str] = typer.Option(None, "--user", help="Signed-in user id"),
    price: Optional[str] = typer.Option(None, "--price", help="Price to check out after generating"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load configuration from this file"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Validate the inputs, generate a model and run the payment gate.
    """
    if image and not image.exists():
        _print(f"File not found: {image}", "red")
        raise typer.Exit(1)

    fields = {
        "prompt": prompt,
        "image": image.read_bytes() if image else None,
        "width": width,
        "height": height,
        "depth": depth,
        "material": material,
        "supports": supports,
        "infill": infill,
        "shell_thickness": shell,
        "output_format": OutputFormat.DOWNLOAD if download else OutputFormat.PREVIEW,
    }

    async def run():
        controller = StudioController.from_config(_load(env_file))
        try:
            if user:
                await controller.session.sign_in(UserIdentity(id=user))
            outcome = await controller.generate(fields)
            purchase = await controller.purchase(price) if price and outcome.error is None else None
            return outcome, purchase
        finally:
            await controller.close()

    if as_json:
        outcome, purchase = asyncio.run(run())
    else:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task("Generating model...", total=None)
            outcome, purchase = asyncio.run(run())

    if outcome.error:
        if as_json:
            _print_json(outcome.error.to_dict())
        else:
            _print(f"❌ {outcome.error.message}", "bold red")
        raise typer.Exit(2)

    if as_json:
        data = outcome.dispatch.to_dict()
        if purchase:
            data["purchase"] = {
                "decision": purchase.decision.value,
                "state": purchase.state.value,
                "redirect_url": purchase.redirect_url,
                "message": purchase.message,
            }
        _print_json(data)
        return

    result = outcome.result
    if result.is_placeholder:
        _print(f"⚠️  {outcome.message}", "yellow")
    else:
        _print("✅ Model generated!", "bold green")
    _print(f"   Model: {result.model_asset_url}")

    if purchase:
        if purchase.redirect_url:
            _print(f"   Checkout: {purchase.redirect_url}", "cyan")
        elif purchase.message:
            _print(f"   {purchase.message}", "yellow")
        else:
            _print("   No purchase needed.")


@app.command()
def checkout(
    price: str = typer.Argument(..., help="Stripe price id"),
    user: str = typer.Option(..., "--user", help="Signed-in user id"),
    model_url: Optional[str] = typer.Option(None, "--model-url", help="Model being purchased"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load configuration from this file"),
):
    """
    Start a checkout for a price.
    """
    async def run():
        controller = StudioController.from_config(_load(env_file))
        try:
            await controller.session.sign_in(UserIdentity(id=user))
            if model_url:
                controller.dispatcher.current_result = GenerationResult(model_url)
            return await controller.purchase(price)
        finally:
            await controller.close()

    purchase = asyncio.run(run())
    if purchase.redirect_url:
        _print(f"✅ Checkout ready: {purchase.redirect_url}", "bold green")
    elif purchase.decision in GATE_MESSAGES or purchase.error:
        _print(f"❌ {purchase.message}", "bold red")
        raise typer.Exit(1)
    else:
        _print("No purchase needed.")


@app.command()
def plan(
    user: str = typer.Argument(..., help="User id"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load configuration from this file"),
):
    """
    Look up the plan of a user.
    """
    async def run():
        controller = StudioController.from_config(_load(env_file))
        try:
            return await controller.session.sign_in(UserIdentity(id=user))
        finally:
            await controller.close()

    state = asyncio.run(run())
    table = Table()
    table.add_column("User", style="cyan")
    table.add_column("Plan", style="green")
    table.add_row(user, state.plan_tier.value)
    console.print(table)


@app.command()
def config(
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load configuration from this file"),
):
    """
    Show configuration status.
    """
    cfg = _load(env_file)
    _print("🔧 Configuration Status:\n", "bold")
    _print(f"   Backend:      {cfg.backend_url}")
    _print(f"   Sloyd:        {'✅' if cfg.has_sloyd else '❌'}")
    _print(f"   Stripe:       {'✅' if cfg.has_stripe else '❌'}")
    _print(f"   Webhook:      {'✅' if cfg.has_stripe_webhook else '❌'}")

    missing = cfg.validate_for_backend()
    if missing:
        _print("\n⚠️  Missing:", "yellow")
        for item in missing:
            _print(f"   • {item}", "yellow")


@app.command()
def serve():
    """
    Run the backend API server.
    """
    from .web.api import main as run_server
    run_server()


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
