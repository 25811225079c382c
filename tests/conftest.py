"""
pytest configuration and fixtures.
"""

import json
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from jiranotes import NotesServer, ServerConfig
from jiranotes.handlers import Capabilities
from jiranotes.store import FolderNotSet, NoteStoreError, normalize_ticket_id


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample load request."""
    return (
        b"GET /load?ticketId=ABC-123 HTTP/1.1\r\n"
        b"Host: 127.0.0.1:18427\r\n"
        b"Origin: https://example.atlassian.net\r\n"
        b"Accept: */*\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_note() -> bytes:
    return b'{"ticketId":"ABC-123","text":"hello","updatedAt":"2025-01-01T00:00:00Z"}'


@pytest.fixture
def sample_post_request(sample_note: bytes) -> bytes:
    """Sample save request with a JSON body."""
    return (
        b"POST /save?ticketId=ABC-123 HTTP/1.1\r\n"
        b"Host: 127.0.0.1:18427\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(sample_note)}\r\n\r\n".encode()
        + sample_note
    )


@pytest.fixture
def sample_options_request() -> bytes:
    """CORS preflight as sent by the browser before /save."""
    return (
        b"OPTIONS /save?ticketId=ABC-123 HTTP/1.1\r\n"
        b"Host: 127.0.0.1:18427\r\n"
        b"Access-Control-Request-Method: POST\r\n"
        b"Access-Control-Request-Headers: content-type\r\n"
        b"\r\n"
    )


# =============================================================================
# CAPABILITIES
# =============================================================================

class FakeCapabilities(Capabilities):
    """In-memory capabilities that record what the handlers asked for."""

    def __init__(self, folder_set: bool = True):
        self.notes: Dict[str, bytes] = {}
        self.folder_set = folder_set
        self.healthy = True
        self.write_error: Optional[str] = None
        self.picker_calls = 0
        self.writes: List[Tuple[str, bytes]] = []

    def read_note(self, key: str) -> Optional[bytes]:
        key = normalize_ticket_id(key)
        if key is None or not self.folder_set:
            return None
        return self.notes.get(key)

    def write_note(self, key: str, data: bytes) -> str:
        if not self.folder_set:
            raise FolderNotSet()
        if self.write_error:
            raise NoteStoreError(self.write_error)
        normalized = normalize_ticket_id(key)
        if normalized is None:
            raise NoteStoreError("invalid ticketId")
        self.notes[normalized] = data
        self.writes.append((normalized, data))
        return f"/fake/notes/{normalized}.json"

    def trigger_folder_picker(self) -> None:
        self.picker_calls += 1

    def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def fake_capabilities() -> FakeCapabilities:
    return FakeCapabilities()


@pytest.fixture
def notes_dir(tmp_path: Path) -> Path:
    """Empty notes folder (created on first save)."""
    return tmp_path / "notes"


@pytest.fixture
def config(notes_dir: Path) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        notes_dir=str(notes_dir),
        read_timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


# =============================================================================
# RAW SOCKET CLIENT
# =============================================================================

@dataclass
class RawResponse:
    """A response as read off the wire."""

    status_line: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    raw: bytes = b""

    @property
    def status_code(self) -> int:
        return int(self.status_line.split(" ", 2)[1])

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def json(self):
        return json.loads(self.body.decode("utf-8"))

    @classmethod
    def parse(cls, data: bytes) -> "RawResponse":
        head, _, body = data.partition(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        headers = []
        for line in lines[1:]:
            name, _, value = line.partition(":")
            headers.append((name.strip(), value.strip()))
        return cls(status_line=lines[0], headers=headers, body=body, raw=data)


class RawHTTPClient:
    """Talks to the server with plain sockets, one connection per request."""

    def __init__(self, port: int, host: str = "127.0.0.1", timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def send(self, *parts: bytes, delay: float = 0.0) -> RawResponse:
        """Send parts separately (with delay between them) and read to EOF."""
        with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
            for i, part in enumerate(parts):
                if i and delay:
                    time.sleep(delay)
                sock.sendall(part)
            return RawResponse.parse(_read_all(sock))

    def request(
        self,
        method: str,
        target: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> RawResponse:
        lines = [f"{method} {target} HTTP/1.1", f"Host: {self.host}:{self.port}"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if body is not None:
            lines.append(f"Content-Length: {len(body)}")
        data = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + (body or b"")
        return self.send(data)

    def get(self, target: str) -> RawResponse:
        return self.request("GET", target)

    def post(self, target: str, body: Optional[bytes] = None) -> RawResponse:
        return self.request("POST", target, body=body, headers={"Content-Type": "application/json"})


def _read_all(sock: socket.socket) -> bytes:
    data = b""
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return data
        data += chunk


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[NotesServer, None, None]:
    """A NotesServer with a real notes folder, listening on a free port."""
    server = NotesServer(config)
    server.start()

    yield server

    server.stop()


@pytest.fixture
def client(running_server: NotesServer) -> RawHTTPClient:
    return RawHTTPClient(running_server.port)


@pytest.fixture
def run_in_threads():
    """Run fn(i) for i in range(n) concurrently and return the results in order."""

    def run(fn, n: int) -> list:
        results = [None] * n
        errors = []

        def worker(i):
            try:
                results[i] = fn(i)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)
        if errors:
            raise errors[0]
        return results

    return run


@pytest.fixture
def make_client():
    """Build a RawHTTPClient for a server started inside the test."""
    return RawHTTPClient


@pytest.fixture(autouse=True)
def _restore_jiranotes_log_level():
    """Undo the logger level NotesServer._setup_logging leaves behind between tests."""
    import logging

    pkg_logger = logging.getLogger("jiranotes")
    level = pkg_logger.level
    yield
    pkg_logger.setLevel(level)
