# functions/autostart_api.py
"""
Runs the functions app next to Streamlit when the site is configured to use a
proxy on this machine, so local-proxy mode works without a separate terminal.
"""
from __future__ import annotations

import atexit
import contextlib
import os
import socket
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple
from urllib.parse import urlparse

import requests
import streamlit as st

from services.log import get_logger

logger = get_logger(__name__)

SRC_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOCAL_HOSTS = ("localhost", "127.0.0.1")
TRUTHY = ("1", "true", "yes", "y")


@dataclass
class FunctionsApiSettings:
    enabled: bool = True
    app: str = "functions.api:app"
    host: str = "127.0.0.1"
    port: int = 8888
    reload: bool = False
    log_path: str = os.path.join("logs", "uvicorn.log")

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides) -> "FunctionsApiSettings":
        env = os.environ if env is None else env
        settings = cls(
            enabled=env.get("FUNCTIONS_API_AUTOSTART", "1").lower() in TRUTHY,
            app=env.get("FUNCTIONS_API_APP") or cls.app,
            host=env.get("FUNCTIONS_API_HOST") or cls.host,
            port=int(env.get("FUNCTIONS_API_PORT") or cls.port),
            reload=env.get("FUNCTIONS_API_RELOAD", "0").lower() in TRUTHY,
            log_path=env.get("FUNCTIONS_API_LOG") or cls.log_path,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(settings, key, value)
        return settings


def local_target(proxy_url: Optional[str]) -> Optional[Tuple[str, int]]:
    """(host, port) when the proxy URL points at this machine, else None."""
    parsed = urlparse(proxy_url or "")
    if parsed.hostname not in LOCAL_HOSTS:
        return None
    return parsed.hostname, parsed.port or (443 if parsed.scheme == "https" else 80)


def port_open(host: str, port: int, timeout: float = 0.25) -> bool:
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as sock:
        sock.settimeout(timeout)
        return sock.connect_ex((host, port)) == 0


def is_healthy(url: str, timeout: float = 1.0) -> bool:
    try:
        return requests.get(f"{url}/health", timeout=timeout).ok
    except requests.RequestException:
        return False


def uvicorn_command(settings: FunctionsApiSettings) -> List[str]:
    cmd = [
        sys.executable, "-m", "uvicorn", settings.app,
        "--app-dir", SRC_DIR,
        "--host", settings.host,
        "--port", str(settings.port),
        "--workers", "1",
    ]
    return cmd + ["--reload"] if settings.reload else cmd


def _wait_for(settings: FunctionsApiSettings, timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if port_open(settings.host, settings.port) and is_healthy(settings.url):
            return True
        time.sleep(0.2)
    return False


def start_functions_api(settings: FunctionsApiSettings, startup_timeout: float = 10.0) -> dict:
    """Returns {status, url, pid}; status is disabled, already-running, started or failed."""
    if not settings.enabled:
        return {"status": "disabled", "url": None, "pid": None}
    if port_open(settings.host, settings.port):
        return {"status": "already-running", "url": settings.url, "pid": None}

    log_dir = os.path.dirname(settings.log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    log_file = open(settings.log_path, "a", encoding="utf-8")
    proc = subprocess.Popen(uvicorn_command(settings), stdout=log_file, stderr=subprocess.STDOUT)
    logger.info("Functions API starting (pid=%s) on %s", proc.pid, settings.url)

    def _stop():
        with contextlib.suppress(OSError):
            proc.terminate()
        log_file.close()
    atexit.register(_stop)

    if not _wait_for(settings, startup_timeout):
        logger.error("Functions API did not come up on %s, see %s", settings.url, settings.log_path)
        return {"status": "failed", "url": settings.url, "pid": proc.pid}
    return {"status": "started", "url": settings.url, "pid": proc.pid}


@st.cache_resource(show_spinner=False)
def ensure_functions_api(host: Optional[str] = None, port: Optional[int] = None) -> dict:
    """Start the functions app once per Streamlit server process."""
    return start_functions_api(FunctionsApiSettings.from_env(host=host, port=port))
