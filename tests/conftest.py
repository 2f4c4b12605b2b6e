"""Shared pytest fixtures for ngrok wrapper tests."""

import json
import stat
import sys
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlsplit

import pytest

FAKE_NGROK_TEMPLATE = '''\
#!{python}
import json
import os
import signal
import sys
import time

MODE = {mode!r}
VERSION = {version!r}
ADDR = {addr!r}
RECORD = {record!r}

args = sys.argv[1:]
if "--version" in args:
    if MODE == "slow":
        time.sleep(0.7)
    print("ngrok version " + VERSION)
    sys.exit(0)

with open(RECORD, "a") as f:
    f.write(json.dumps({{"pid": os.getpid(), "args": args}}) + "\\n")

if args[:1] == ["authtoken"] or args[:2] == ["config", "add-authtoken"]:
    if MODE == "auth_fail":
        print("ERROR: invalid authtoken")
        sys.exit(1)
    print("Authtoken saved to configuration file")
    sys.exit(0)


def log(line):
    print(line, flush=True)


if MODE == "stubborn":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
log('t=2024-01-05T10:00:00+0000 lvl=info msg="no configuration paths supplied"')
if MODE == "slow":
    time.sleep(0.7)
if MODE in ("ready", "ready_then_exit", "stubborn", "ready_chatty", "slow"):
    log('t=2024-01-05T10:00:00+0000 lvl=info msg="starting web service" obj=web addr=' + ADDR)
    log('t=2024-01-05T10:00:01+0000 lvl=info msg="client session established" obj=tunnels.session')
    log('t=2024-01-05T10:00:01+0000 lvl=info msg="tunnel session started" obj=tunnels.session')
elif MODE == "json_custom":
    log(json.dumps({{"level": "info", "message": "api listening", "address": ADDR}}))
    log(json.dumps({{"level": "info", "message": "agent online"}}))
elif MODE == "error":
    log('t=2024-01-05T10:00:00+0000 lvl=info msg="starting web service" obj=web addr=' + ADDR)
    log('t=2024-01-05T10:00:01+0000 lvl=eror msg="session closing" obj=tunnels.session '
        'err="authentication failed: The authtoken you specified is invalid"')
elif MODE == "exit":
    sys.exit(3)
elif MODE == "unterminated_error":
    sys.stdout.write('t=x lvl=eror msg="session closing" err="bad authtoken"')
    sys.stdout.flush()
    sys.exit(1)
elif MODE == "chatty":
    while True:
        log('t=2024-01-05T10:00:00+0000 lvl=info msg="still waiting"')
        time.sleep(0.01)

if MODE == "ready_then_exit":
    time.sleep(0.3)
    sys.exit(5)
if MODE == "ready_chatty":
    while True:
        log('t=2024-01-05T10:00:02+0000 lvl=info msg="join connections" obj=join')
        time.sleep(0.005)

while True:
    time.sleep(0.1)
'''


@dataclass
class FakeNgrok:
    """A fake ngrok executable and the record of how it was invoked."""

    path: Path
    record_path: Path

    def invocations(self) -> list[dict[str, Any]]:
        if not self.record_path.exists():
            return []
        return [json.loads(line) for line in self.record_path.read_text().splitlines()]


@pytest.fixture
def make_fake_ngrok(tmp_path) -> Callable[..., FakeNgrok]:
    """Factory writing a Python script that behaves like ngrok.

    Modes: ready, ready_then_exit, ready_chatty, stubborn, slow, json_custom,
    error, unterminated_error, exit, hang, chatty, auth_fail.
    """
    if sys.platform == "win32":
        pytest.skip("fake ngrok scripts rely on shebang execution")

    counter = iter(range(1000))

    def factory(
        mode: str = "ready",
        version: str = "3.5.0",
        addr: str = "127.0.0.1:4040",
    ) -> FakeNgrok:
        index = next(counter)
        path = tmp_path / f"bin{index}" / "ngrok"
        path.parent.mkdir()
        record_path = tmp_path / f"invocations{index}.jsonl"
        path.write_text(
            FAKE_NGROK_TEMPLATE.format(
                python=sys.executable,
                mode=mode,
                version=version,
                addr=addr,
                record=str(record_path),
            )
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return FakeNgrok(path=path, record_path=record_path)

    return factory


@pytest.fixture
def config_path(tmp_path) -> Path:
    """Location for a generated ngrok.yml."""
    return tmp_path / "conf" / "ngrok.yml"


@pytest.fixture(autouse=True)
def no_env_authtoken(monkeypatch):
    """Keep a developer's NGROK_AUTHTOKEN out of the tests."""
    monkeypatch.delenv("NGROK_AUTHTOKEN", raising=False)


# Stub of ngrok's local API


@dataclass
class FakeApiState:
    """Tunnels, captured requests and request log of the stub API."""

    tunnels: dict[str, dict[str, Any]] = field(default_factory=dict)
    captured: list[dict[str, Any]] = field(default_factory=list)
    raw_paths: list[str] = field(default_factory=list)
    headers: list[dict[str, str]] = field(default_factory=list)
    replayed: list[dict[str, Any]] = field(default_factory=list)

    def add_captured(self, tunnel_name: str) -> None:
        index = len(self.captured)
        self.captured.append(
            {
                "uri": f"/api/requests/http/req_{index}",
                "id": f"req_{index}",
                "tunnel_name": tunnel_name,
                "remote_addr": "127.0.0.1",
                "start": "2024-01-05T10:00:00Z",
                "duration": 1500,
                "request": {"method": "GET", "uri": "/status"},
                "response": {"status_code": 200},
            }
        )


class FakeApiHandler(BaseHTTPRequestHandler):
    """Implements the subset of the ngrok API the wrapper uses."""

    server: "FakeApiServer"

    def log_message(self, format: str, *args: Any) -> None:
        pass

    @property
    def state(self) -> FakeApiState:
        return self.server.state

    def _record(self) -> tuple[str, dict[str, list[str]]]:
        self.state.raw_paths.append(self.path)
        self.state.headers.append(dict(self.headers))
        parts = urlsplit(self.path)
        return unquote(parts.path), parse_qs(parts.query)

    def _send_json(self, status: int, body: Any) -> None:
        payload = json.dumps(body).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _send_empty(self, status: int = 204) -> None:
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _send_error(self, status: int, msg: str) -> None:
        self._send_json(
            status, {"error_code": 100, "status_code": status, "msg": msg, "details": {}}
        )

    def _read_json(self) -> Any:
        length = int(self.headers.get("Content-Length") or 0)
        return json.loads(self.rfile.read(length) or b"{}")

    def do_GET(self) -> None:
        path, query = self._record()
        if path == "/api/tunnels":
            self._send_json(
                200, {"tunnels": list(self.state.tunnels.values()), "uri": "/api/tunnels"}
            )
        elif path.startswith("/api/tunnels/"):
            tunnel = self.state.tunnels.get(path[len("/api/tunnels/"):])
            if tunnel is None:
                self._send_error(404, "Tunnel not found")
            else:
                self._send_json(200, tunnel)
        elif path == "/api/requests/http":
            names = query.get("tunnel_name")
            requests = [
                r for r in self.state.captured if not names or r["tunnel_name"] == names[0]
            ]
            self._send_json(200, {"uri": "/api/requests/http", "requests": requests})
        else:
            self._send_error(404, "Not found")

    def do_POST(self) -> None:
        path, _ = self._record()
        body = self._read_json()
        if path == "/api/tunnels":
            name = body["name"]
            if name in self.state.tunnels:
                self._send_error(400, f"tunnel {name} already exists")
                return
            addr = body.get("addr", "80")
            if body.get("proto", "http") == "http" and addr.isdigit():
                addr = f"http://localhost:{addr}"
            tunnel = {
                "name": name,
                "uri": f"/api/tunnels/{quote(name)}",
                "public_url": f"https://{len(self.state.tunnels)}abc.ngrok.io",
                "proto": body.get("proto", "http"),
                "config": {"addr": addr, "inspect": True},
                "metrics": {"conns": {"count": 0}, "http": {"count": 0}},
            }
            self.state.tunnels[name] = tunnel
            self._send_json(201, tunnel)
        elif path == "/api/requests/http":
            self.state.replayed.append(body)
            self._send_empty()
        else:
            self._send_error(404, "Not found")

    def do_PUT(self) -> None:
        path, _ = self._record()
        length = int(self.headers.get("Content-Length") or 0)
        text = self.rfile.read(length).decode()
        self._send_json(200, {"path": path, "echo": text, "content_type": self.headers["Content-Type"]})

    def do_DELETE(self) -> None:
        path, _ = self._record()
        if path.startswith("/api/tunnels/"):
            if self.state.tunnels.pop(path[len("/api/tunnels/"):], None) is None:
                self._send_error(404, "Tunnel not found")
            else:
                self._send_empty()
        elif path == "/api/requests/http":
            self.state.captured.clear()
            self._send_empty()
        else:
            self._send_error(404, "Not found")


class FakeApiServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), FakeApiHandler)
        self.state = FakeApiState()

    @property
    def addr(self) -> str:
        host, port = self.server_address[:2]
        return f"{host}:{port}"

    @property
    def url(self) -> str:
        return f"http://{self.addr}"


@pytest.fixture
def fake_api() -> Iterator[FakeApiServer]:
    """Stub ngrok API served from a background thread."""
    server = FakeApiServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


@pytest.fixture
def running_supervisor(fake_api):
    """A supervisor stand-in whose process is running with the stub API."""
    from unittest.mock import Mock  # noqa: PLC0415

    from ngrok_wrapper.process import ProcessState, ProcessStatus, ProcessSupervisor  # noqa: PLC0415

    supervisor = Mock(spec=ProcessSupervisor)
    supervisor.start.return_value = ProcessState(
        status=ProcessStatus.RUNNING, pid=12345, version="3.5.0", api_url=fake_api.url
    )
    supervisor.api_url = fake_api.url
    supervisor.is_running.return_value = True
    supervisor.get_version.return_value = "3.5.0"
    return supervisor
