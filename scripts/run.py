#!/usr/bin/env python3
"""Run the attendance API with Uvicorn. Host, port and reload come from APP_* env vars."""

import os

import uvicorn
from dotenv import load_dotenv
from rich.console import Console

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

console = Console()

if __name__ == "__main__":
    load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

    APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    APP_RELOAD = os.getenv("APP_RELOAD", "True").lower() in ("true", "1", "t")
    # Uvicorn's own log level follows LOG_LEVEL unless overridden
    APP_LOG_LEVEL = os.getenv("APP_LOG_LEVEL", os.getenv("LOG_LEVEL", "info")).lower()

    console.print(
        f"[bold cyan]Attendance API[/bold cyan] on http://{APP_HOST}:{APP_PORT} "
        f"(reload={APP_RELOAD}, log level={APP_LOG_LEVEL})"
    )
    console.print(f"Real-time feed: ws://{APP_HOST}:{APP_PORT}/ws?token=<firebase id token>")

    uvicorn.run(
        "main:app",
        host=APP_HOST,
        port=APP_PORT,
        reload=APP_RELOAD,
        log_level=APP_LOG_LEVEL,
        app_dir=PROJECT_ROOT,
        # WebSocket keepalive for the real-time feed
        ws_ping_interval=20.0,
        reload_dirs=[PROJECT_ROOT],
    )
