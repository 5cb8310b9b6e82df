from __future__ import annotations

import contextlib
import pathlib
import socket
import socketserver
import ssl
import threading
import time
import types
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    import trustme

    from pytest_mock import MockerFixture


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    directory = pathlib.PurePath(__file__).parent
    for item in items:
        if pathlib.PurePath(item.fspath).is_relative_to(directory):
            item.add_marker(pytest.mark.functional)


class EchoRequestHandler(socketserver.BaseRequestHandler):
    request: socket.socket

    def handle(self) -> None:
        while data := self.request.recv(65536):
            self.request.sendall(data)


class TLSEchoRequestHandler(EchoRequestHandler):
    server: TLSEchoServer

    def setup(self) -> None:
        self.request = self.server.ssl_context.wrap_socket(self.request, server_side=True)

    def finish(self) -> None:
        with contextlib.suppress(OSError, ValueError):
            self.request = self.request.unwrap()


class TLSLateGreetingRequestHandler(TLSEchoRequestHandler):
    greeting: bytes = b"late"
    greeting_delay: float = 0.8

    def handle(self) -> None:
        time.sleep(self.greeting_delay)
        self.request.sendall(self.greeting)
        super().handle()


class TricklingHandshakeRequestHandler(socketserver.BaseRequestHandler):
    request: socket.socket

    def handle(self) -> None:
        # Announces a 16KiB handshake record, then sends it one byte at a time
        self.request.recv(65536)
        self.request.sendall(b"\x16\x03\x03\x40\x00")
        for _ in range(50):
            time.sleep(0.1)
            self.request.sendall(b"\x00")


class EchoServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def handle_error(self, request: Any, client_address: Any) -> None:
        # Handshake failures and resets are expected by some tests
        pass


class TLSEchoServer(EchoServer):
    def __init__(
        self,
        server_address: tuple[str, int],
        ssl_context: ssl.SSLContext,
        handler_class: type[TLSEchoRequestHandler] = TLSEchoRequestHandler,
    ) -> None:
        self.ssl_context = ssl_context
        super().__init__(server_address, handler_class)


@contextlib.contextmanager
def _serve_in_thread(server: socketserver.BaseServer) -> Iterator[None]:
    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()
    try:
        yield
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


@pytest.fixture
def echo_server() -> Iterator[EchoServer]:
    server = EchoServer(("127.0.0.1", 0), EchoRequestHandler)
    with _serve_in_thread(server):
        yield server


@pytest.fixture
def echo_server_port(echo_server: EchoServer) -> int:
    return echo_server.server_address[1]


@pytest.fixture
def silent_listener() -> Iterator[socket.socket]:
    # Connections complete in the backlog, but nobody ever reads nor writes
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(8)
        yield listener


@pytest.fixture
def unused_tcp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="session")
def ssl_certificate_authority() -> trustme.CA | None:
    try:
        import trustme
    except ModuleNotFoundError:
        return None
    else:
        return trustme.CA()


@pytest.fixture(scope="session")
def server_certificate(ssl_certificate_authority: trustme.CA | None) -> trustme.LeafCert | None:
    if ssl_certificate_authority is None:
        return None
    return ssl_certificate_authority.issue_cert("*.example.com")


@pytest.fixture
def server_ssl_context(server_certificate: trustme.LeafCert | None) -> ssl.SSLContext:
    if server_certificate is None:
        pytest.skip("trustme is not installed")

    server_ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_certificate.configure_cert(server_ssl_context)
    return server_ssl_context


@pytest.fixture
def client_ssl_context(ssl_certificate_authority: trustme.CA | None) -> ssl.SSLContext:
    if ssl_certificate_authority is None:
        pytest.skip("trustme is not installed")

    client_ssl_context = ssl.create_default_context()
    ssl_certificate_authority.configure_trust(client_ssl_context)
    return client_ssl_context


@pytest.fixture
def tls_echo_server(server_ssl_context: ssl.SSLContext) -> Iterator[TLSEchoServer]:
    server = TLSEchoServer(("127.0.0.1", 0), server_ssl_context)
    with _serve_in_thread(server):
        yield server


@pytest.fixture
def tls_echo_server_port(tls_echo_server: TLSEchoServer) -> int:
    return tls_echo_server.server_address[1]


@pytest.fixture
def tls_late_greeting_server_port(server_ssl_context: ssl.SSLContext) -> Iterator[int]:
    server = TLSEchoServer(("127.0.0.1", 0), server_ssl_context, TLSLateGreetingRequestHandler)
    with _serve_in_thread(server):
        yield server.server_address[1]


@pytest.fixture
def trickling_handshake_server_port() -> Iterator[int]:
    server = EchoServer(("127.0.0.1", 0), TricklingHandshakeRequestHandler)
    with _serve_in_thread(server):
        yield server.server_address[1]


@pytest.fixture
def client_sockets(mocker: MockerFixture) -> list[socket.socket]:
    """Every socket opened by the connection establishment."""
    created: list[socket.socket] = []

    def socket_factory(*args: Any, **kwargs: Any) -> socket.socket:
        sock = socket.socket(*args, **kwargs)
        created.append(sock)
        return sock

    recording_socket_module = types.ModuleType(socket.__name__)
    recording_socket_module.__dict__.update(vars(socket))
    setattr(recording_socket_module, "socket", socket_factory)
    mocker.patch("netdial.connection._socket", recording_socket_module)
    return created


@pytest.fixture
def linux_only() -> None:
    import sys

    if not sys.platform.startswith("linux"):
        pytest.skip("Linux-specific behaviour")


@pytest.fixture
def schedule_call_in_thread(request: pytest.FixtureRequest) -> Callable[[float, Callable[[], Any]], None]:
    def schedule_call_in_thread(delay: float, callback: Callable[[], Any]) -> None:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        request.addfinalizer(timer.join)
        timer.start()

    return schedule_call_in_thread
