"""
amtsbote.web.server
~~~~~~~~~~~~~~~~~~~
Uvicorn launcher for the amtsbote HTTP API.

Called by the CLI via ``amtsbote serve`` or directly::

    python -m amtsbote.web.server
    python -m amtsbote.web.server --port 8080 --log-level info

The API has no authentication layer of its own. Bind it to a loopback
address unless a reverse proxy in front of it takes care of that.
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import threading
import time
import webbrowser

import uvicorn

from ..config import cfg

logger = logging.getLogger(__name__)

APP_PATH     = "amtsbote.web.api:app"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def is_loopback(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def banner(host: str, port: int) -> str:
    """Start-up text: where the API listens and which portals it talks to."""
    url = f"http://{host}:{port}"
    elda_mode = "TEST" if cfg.elda_test_mode else "production"
    return "\n".join([
        "",
        f"  amtsbote API  →  {url}",
        f"  API docs      →  {url}/docs",
        f"  FinanzOnline  :  {cfg.fonws_base_url}",
        f"  ELDA          :  {cfg.active_elda_endpoint} ({elda_mode})",
        "  Press Ctrl+C to stop.",
        "",
    ])


def _open_browser(url: str, delay: float = 1.2) -> None:
    """Open the browser after a short delay so the server is ready."""
    def _open():
        time.sleep(delay)
        webbrowser.open(url)
    threading.Thread(target=_open, daemon=True).start()


def launch(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    reload: bool = False,
    open_browser: bool = False,
    log_level: str = "warning",
) -> None:
    """
    Start the amtsbote API server; blocks until interrupted.

    Args:
        host:         Bind address (default 127.0.0.1).
        port:         TCP port (default 8000).
        reload:       Enable uvicorn hot-reload (dev mode only).
        open_browser: Open the interactive API docs on start.
        log_level:    Uvicorn log level.
    """
    if not is_loopback(host):
        logger.warning("Binding the unauthenticated API to %s, reachable beyond this machine", host)

    print(banner(host, port))
    if open_browser:
        _open_browser(f"http://{host}:{port}/docs")

    uvicorn.run(APP_PATH, host=host, port=port, reload=reload, log_level=log_level)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Start the amtsbote HTTP API server.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--host",         default=DEFAULT_HOST, help="Bind address.")
    p.add_argument("--port", "-p",   default=DEFAULT_PORT, type=int, help="TCP port.")
    p.add_argument("--reload",       action="store_true", help="Enable hot-reload (development mode).")
    p.add_argument("--open-browser", action="store_true", help="Open the API docs in a browser.")
    p.add_argument("--log-level",    default="warning",
                   choices=["debug", "info", "warning", "error"], help="Uvicorn log level.")
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING)
    launch(args.host, args.port, args.reload, args.open_browser, args.log_level)


if __name__ == "__main__":
    main()
