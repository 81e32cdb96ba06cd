from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit
import logging
import re
import shlex
import signal
import socket
import subprocess
import threading
import time

import requests

from .config import WebServerOptions
from .exceptions import ServerError

logger = logging.getLogger(__name__)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
LOCAL_URL = re.compile(r"Local:\s+(https?://[^\s)\]>'\",]+)")
ANY_URL = re.compile(r"(https?://[\w.\-]+(?::\d+)?[^\s)\]>'\",]*)")

GRACE_PERIOD = 2.0
POLL_INTERVAL = 0.1
HEALTH_CHECK_TIMEOUT = 2.0


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def detect_ready_url(line: str, ready_pattern: Optional[str] = None, fallback: Optional[str] = None) -> Optional[str]:
    """
    Extract the served URL from one line of server output.

    A custom ready_pattern wins; its first group (if any) is the URL,
    otherwise a match means "ready at fallback". Without a pattern a
    Vite-style "Local: http://..." line is preferred over any URL.
    """
    clean = strip_ansi(line).strip()
    if ready_pattern:
        match = re.search(ready_pattern, clean)
        if not match:
            return None
        return match.group(1) if match.groups() else fallback

    for pattern in (LOCAL_URL, ANY_URL):
        match = pattern.search(clean)
        if match:
            return match.group(1).rstrip(".,;:/")
    return None


def port_is_open(port: int, host: str = "localhost", timeout: float = 0.5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def is_responding(url: str, timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException:
        return False
    return response.status_code < 500


class ServerManager:
    """Starts the development web server once per run and stops it afterwards"""

    def __init__(
        self,
        options: WebServerOptions,
        cwd: Optional[str] = None,
        grace_period: float = GRACE_PERIOD,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.options = options
        self.cwd = cwd
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.process: Optional[subprocess.Popen] = None
        self.url: Optional[str] = None
        self.output: List[str] = []
        self._detected_url: Optional[str] = None
        self._reader: Optional[threading.Thread] = None
        self._previous_handlers: Dict[int, Callable] = {}

    @property
    def fallback_url(self) -> str:
        return self.options.base_url or f"http://localhost:{self.options.port}"

    @property
    def port(self) -> Optional[int]:
        if self.url is None:
            return None
        return urlsplit(self.url).port or self.options.port

    def start(self) -> str:
        """
        Make the server available and return its URL.

        Raises:
            ServerError: process exited, never became ready, or failed health checks
        """
        if self.options.reuse_existing_server and is_responding(self.fallback_url):
            logger.info(f"Reusing existing server at {self.fallback_url}")
            self.url = self.fallback_url
            return self.url

        command = shlex.split(self.options.command)
        logger.info(f"Starting web server: {' '.join(command)}")
        try:
            self.process = subprocess.Popen(
                command,
                cwd=self.cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise ServerError(f"Failed to start web server {command[0]!r}: {e}") from e
        logger.debug(f"Web server PID {self.process.pid}")

        self._reader = threading.Thread(target=self._read_output, name="bdui-server-output", daemon=True)
        self._reader.start()

        try:
            url = self._wait_until_ready()
            self._health_check(url)
        except ServerError:
            self.stop()
            raise

        self.url = url
        logger.info(f"Web server ready at {url}")
        return url

    def _read_output(self) -> None:
        stream = self.process.stdout
        for line in iter(stream.readline, ""):
            line = line.rstrip("\n")
            self.output.append(line)
            logger.debug(f"[web server] {strip_ansi(line)}")
            if self._detected_url is None:
                detected = detect_ready_url(line, self.options.ready_pattern, self.fallback_url)
                if detected:
                    logger.info(f"Detected server URL {detected}")
                    self._detected_url = detected

    def _wait_until_ready(self) -> str:
        deadline = time.monotonic() + self.options.timeout
        while time.monotonic() < deadline:
            if self._detected_url:
                return self._detected_url
            code = self.process.poll()
            if code is not None:
                raise ServerError(f"Web server exited with code {code} before becoming ready")
            if not self.options.ready_pattern and port_is_open(self.options.port):
                logger.debug(f"Port {self.options.port} is accepting connections")
                return self._detected_url or self.fallback_url
            time.sleep(self.poll_interval)
        raise ServerError(f"Web server did not become ready within {self.options.timeout}s")

    def _health_check(self, url: str) -> None:
        deadline = time.monotonic() + self.options.timeout
        while time.monotonic() < deadline:
            if is_responding(url):
                return
            time.sleep(self.poll_interval)
        raise ServerError(f"Web server at {url} did not pass health checks within {self.options.timeout}s")

    def stop(self) -> None:
        """SIGTERM, wait the grace period, then SIGKILL. Safe to call repeatedly."""
        process, self.process = self.process, None
        if process is None or process.poll() is not None:
            return

        logger.info("Stopping web server")
        process.terminate()
        try:
            process.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            logger.warning("Web server ignored SIGTERM, killing it")
            process.kill()
            try:
                process.wait(timeout=self.grace_period)
            except subprocess.TimeoutExpired:
                logger.error(f"Web server PID {process.pid} did not exit after SIGKILL")

    def install_signal_handlers(self) -> None:
        """Stop the server on SIGINT/SIGTERM, then defer to the previous handler"""
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._on_signal)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _on_signal(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}, stopping web server")
        self.stop()
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        elif signum == signal.SIGINT:
            raise KeyboardInterrupt
        else:
            raise SystemExit(128 + signum)
