"""
Command-line driver for a paid generation run.

Usage:
    toolforge-generate "a sunset over mountains"
    toolforge-generate "a robot mascot" --account 0xabc... --out ./assets
    toolforge-generate "a robot mascot" --endpoint http://localhost:3000/api/generate-image

The wallet is the node behind the configured RPC URL: transactions are sent
with eth_sendTransaction and signed there.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from toolforge.client.models import SessionState
from toolforge.client.payment import CancellationToken, PaymentError, build_coordinator
from toolforge.client.pipeline import ImagePipelineRunner
from toolforge.client.session import GenerationSession
from toolforge.client.validation import ValidationError
from toolforge.client.wallet import Web3WalletProvider
from toolforge.core.config import ToolforgeConfig, config
from toolforge.core.variants import variants_for

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="toolforge-generate",
    help="Pay for and generate a set of app assets",
    add_completion=False,
)
console = Console()


def write_images(state: SessionState, out_dir: Path) -> list[Path]:
    """Write every retrieved image as ``<request-id>-<variant>.png``."""
    if state.request is None:
        return []
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for tag, image in state.images.items():
        path = out_dir / f"{state.request.id}-{tag.value}.png"
        path.write_bytes(base64.b64decode(image.base64))
        paths.append(path)
    return paths


async def run_session(
    prompt: str,
    *,
    cfg: ToolforgeConfig,
    wallet: Web3WalletProvider,
    http: httpx.AsyncClient,
    endpoint: str,
    on_change=None,
    cancel: CancellationToken | None = None,
) -> GenerationSession:
    """Submit ``prompt``, pay for it and wait for the images."""
    runner = ImagePipelineRunner(
        http,
        endpoint,
        variants_for(cfg.variant_set),
        delay_seconds=cfg.request_delay_seconds,
    )
    session = GenerationSession(
        runner,
        lambda on_success: build_coordinator(wallet, cfg, on_success),
        max_prompt_length=cfg.prompt_max_length,
        alert=lambda message: console.print(message, style="bold red"),
        on_change=on_change,
    )
    session.submit(prompt)
    await session.pay(cancel)
    return session


@app.command()
def generate(
    prompt: str = typer.Argument(..., help="What the app is about"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Paying account (defaults to the node's first account)"),
    out: Path = typer.Option(Path("."), "--out", "-o", help="Output directory"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="generate-image endpoint URL"),
):
    """
    Approve and pay with USDC, then generate every asset variant.
    """
    if not config.contract_address:
        console.print("No payment contract configured (TOOLFORGE_CONTRACT_ADDRESS)", style="red")
        raise typer.Exit(1)

    async def _run() -> GenerationSession:
        wallet = Web3WalletProvider.from_rpc(config.resolved_rpc_url, account)
        await wallet.connect()
        console.print(f"Paying {config.payment_amount} USDC from {wallet.address} on {config.preset.name}")

        # Image generation can take minutes per variant
        async with httpx.AsyncClient(timeout=None) as http:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Waiting for approval...", total=None)

                def on_change(state: SessionState) -> None:
                    if state.generating or state.total:
                        progress.update(task, description=f"[cyan]{state.status}", completed=state.progress, total=state.total)
                    elif state.payment_message:
                        progress.update(task, description=f"[yellow]{state.payment_message}")

                return await run_session(
                    prompt,
                    cfg=config,
                    wallet=wallet,
                    http=http,
                    endpoint=endpoint or config.generate_endpoint_url,
                    on_change=on_change,
                )

    try:
        session = asyncio.run(_run())
    except ValidationError as e:
        console.print(str(e), style="red")
        raise typer.Exit(2)
    except PaymentError as e:
        console.print(f"Payment failed: {e}", style="red")
        raise typer.Exit(1)

    state = session.state
    for path in write_images(state, out):
        console.print(f"   Saved: {path}")
    if state.error:
        console.print(state.error, style="red")
        raise typer.Exit(1)
    console.print(f"\n✅ {len(state.images)} images generated!", style="bold green")
    console.print(f"   Payment: {state.payment_tx_hash}")


def main():
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
