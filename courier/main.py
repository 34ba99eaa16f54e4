from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer

from courier.alerts import AlertManager
from courier.client import CourierClient
from courier.config import AppConfig, load_config

app = typer.Typer(add_completion=False, help="Rate-limited, retrying Discord message delivery")


def _setup_logging(config: AppConfig) -> logging.Logger:
    level = getattr(logging, config.logging.level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [
        logging.FileHandler(config.logging.file, encoding="utf-8"),
        logging.StreamHandler(),
    ]

    if config.logging.rich:
        from rich.logging import RichHandler

        handlers[1] = RichHandler(rich_tracebacks=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
    )
    return logging.getLogger("courier")


@app.command()
def send(
    content: str = typer.Option(..., help="Message text"),
    channel: str | None = typer.Option(None, help="Target channel id (defaults to discord.channel_id)"),
    config: Path = typer.Option(Path("config.yaml"), exists=True, help="Path to YAML config"),
) -> None:
    """Post one message through the rate limiter and retry loop."""
    asyncio.run(_send_async(config, content, channel))


async def _send_async(config_path: Path, content: str, channel: str | None) -> None:
    config = load_config(config_path)
    logger = _setup_logging(config)
    alerts = AlertManager(logger, min_level=config.logging.alert_level)
    client = CourierClient(config, alerts=alerts)
    try:
        message = await client.post_message({"content": content}, channel_id=channel)
        logger.info("Message sent: id=%s channel=%s", message.get("id"), message.get("channel_id"))
    except Exception as exc:
        logger.error("Send failed: %s", exc)
        await client.post_error(exc, {"operation": "send"})
        raise typer.Exit(code=1) from exc
    finally:
        client.close()


@app.command("check-config")
def check_config(
    config: Path = typer.Option(Path("config.yaml"), exists=True, help="Path to YAML config"),
) -> None:
    """Validate a config file and print the effective limits."""
    cfg = load_config(config)
    rl = cfg.rate_limit
    typer.echo(f"global bucket: capacity={rl.global_capacity} refill={rl.global_refill_rate}/s")
    typer.echo(f"channel bucket: capacity={rl.channel_capacity} refill={rl.channel_refill_rate}/s")
    typer.echo(
        f"retry: max_retries={cfg.retry.max_retries} base_delay_ms={cfg.retry.base_delay_ms} "
        f"codes={cfg.retry.retryable_http_codes}"
    )
    typer.echo(f"interaction ack deadline: {cfg.interaction.ack_deadline_ms}ms")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
