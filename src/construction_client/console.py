"""
Rich request/response trace panels, enabled with ``ClientConfig(debug=True)``.
"""
import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

console = Console(stderr=True)

SENSITIVE_HEADERS = ("authorization", "x-refresh-token", "cookie")


def mask_token(value: Optional[str], visible_chars: int = 10) -> str:
    """Mask sensitive value for safe logging, showing the first characters."""
    if not value:
        return "<empty>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of headers with credential values masked."""
    masked = dict(headers)
    for key in masked:
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_token(masked[key])
    return masked


def _format_body(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body, indent=2, ensure_ascii=False)
    if isinstance(body, bytes):
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary data: {len(body)} bytes>"
    return str(body)


def print_request(method: str, url: str, headers: Dict[str, str], body: Any = None) -> None:
    console.print(
        Panel(f"[bold cyan]{method}[/bold cyan] {url}", title="[bold blue]Request[/bold blue]")
    )
    console.print("[bold]Headers:[/bold]", mask_headers(headers))
    if body is not None:
        console.print(
            Panel(Syntax(_format_body(body), "json"), title="[bold]Request Body[/bold]")
        )


def print_response(url: str, status: int, reason: str, elapsed_ms: float, data: Any = None) -> None:
    color = "green" if 200 <= status < 400 else "red"
    console.print(
        Panel(
            f"[bold {color}]{status}[/bold {color}] {reason} ({elapsed_ms:.0f}ms)",
            title=f"[bold blue]Response[/bold blue] ({url})",
        )
    )
    if data:
        console.print(
            Panel(Syntax(_format_body(data), "json"), title="[bold]Response Body[/bold]")
        )
