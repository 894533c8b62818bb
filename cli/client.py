from __future__ import annotations

from typing import Any, Dict, List, NoReturn, Optional

import httpx
import typer

from cli.config import CLIConfig


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def describe_error_response(response: httpx.Response) -> str:
    """One-line summary of a failed API call, preferring FastAPI's ``detail``."""
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if not detail:
        detail = response.text.strip() or response.reason_phrase
    return f"{response.request.url.path} returned {response.status_code}: {detail}"


class ApiClient:
    """Reads stored readings back from the query API."""

    def __init__(self, config: CLIConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def get_latest(self) -> Optional[Dict[str, Any]]:
        payload = self._get_json("/data/latest")
        if payload is not None and not isinstance(payload, dict):
            _fail("Unexpected payload from /data/latest.")
        return payload

    def get_all(self) -> List[Dict[str, Any]]:
        payload = self._get_json("/data/all")
        if not isinstance(payload, list):
            _fail("Unexpected payload from /data/all.")
        return payload

    def _get_json(self, path: str) -> Any:
        try:
            response = self._client.get(path)
        except httpx.TransportError as exc:
            _fail(f"Could not reach {self._config.base_url}: {exc}")
        if response.is_error:
            _fail(describe_error_response(response))
        return response.json()
