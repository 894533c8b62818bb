from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer
import uvicorn

from broker.base import TransportError
from broker.publisher import MqttPublisher
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_reading
from logging_config import configure_logging
from services.simulator import DeviceSimulator
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for the sensor ingest service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Query API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("serve")
def serve_command(
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to bind."),
) -> None:
    """Run the query API together with the ingestion loop."""
    configure_logging()
    uvicorn.run("app.main:app", host=host, port=port, log_config=None)


@app.command("simulate")
def simulate_command(
    device: str = typer.Option("sensor-1", "--device", help="Device identifier to publish as."),
    interval: float = typer.Option(5.0, "--interval", min=0.0, help="Seconds between readings."),
    count: int = typer.Option(0, "--count", min=0, help="Number of readings to send (0 = forever)."),
    broker_host: Optional[str] = typer.Option(None, "--broker-host", help="Defaults to MQTT_BROKER_HOST."),
    broker_port: Optional[int] = typer.Option(None, "--broker-port", help="Defaults to MQTT_BROKER_PORT."),
    topic: Optional[str] = typer.Option(None, "--topic", help="Defaults to MQTT_TOPIC."),
    client_id: str = typer.Option("iot-device-1", "--client-id", help="MQTT client identifier."),
) -> None:
    """Publish synthetic readings like a field device."""
    configure_logging()
    settings = get_settings()
    publisher = MqttPublisher(
        host=broker_host or settings.broker_host,
        port=broker_port or settings.broker_port,
        client_id=client_id,
    )
    target_topic = topic or settings.topic
    try:
        publisher.connect()
    except TransportError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Publishing to {target_topic} every {interval}s as {device} ...")
    simulator = DeviceSimulator(publisher, topic=target_topic, device_id=device, interval=interval)
    try:
        sent = simulator.run(count=count)
    except KeyboardInterrupt:
        sent = None
    finally:
        publisher.close()
    if sent is not None:
        typer.secho(f"Published {sent} reading(s).", fg=typer.colors.GREEN)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recently stored reading."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest())


@app.command("history")
def history_command(ctx: typer.Context) -> None:
    """List every stored reading, newest first."""
    state = _get_state(ctx)
    render_history(state.client.get_all())
