from __future__ import annotations

import itertools
from collections.abc import Callable
from socket import AF_INET, AF_INET6, IPPROTO_TCP, SOCK_DGRAM, SOCK_STREAM, socket as Socket
from ssl import SSLContext, SSLObject, SSLSocket
from typing import TYPE_CHECKING

from netdial.lowlevel.transports.abc import Channel

import pytest

if TYPE_CHECKING:
    from unittest.mock import MagicMock

    from pytest_mock import MockerFixture


@pytest.fixture
def mock_socket_factory(mocker: MockerFixture) -> Callable[..., MagicMock]:
    fileno_counter = itertools.count()

    def factory(family: int = -1, type: int = -1, proto: int = -1, fileno: int | None = None) -> MagicMock:
        if family == -1:
            family = AF_INET
        if type == -1:
            type = SOCK_STREAM
        if proto == -1:
            proto = 0
        if fileno is None:
            fileno = 123 + next(fileno_counter)
        mock_socket = mocker.NonCallableMagicMock(spec=Socket)
        mock_socket.family = family
        mock_socket.type = type
        mock_socket.proto = proto
        mock_socket.fileno.return_value = fileno

        def close_side_effect() -> None:
            mock_socket.fileno.return_value = -1

        mock_socket.close.side_effect = close_side_effect
        mock_socket.connect.return_value = None
        mock_socket.connect_ex.return_value = 0
        mock_socket.bind.return_value = None
        mock_socket.getsockopt.return_value = 0
        return mock_socket

    return factory


@pytest.fixture
def mock_tcp_socket_factory(mock_socket_factory: Callable[..., MagicMock]) -> Callable[..., MagicMock]:
    def factory(family: int = -1, fileno: int | None = None) -> MagicMock:
        assert family in {AF_INET, AF_INET6, -1}
        return mock_socket_factory(family, SOCK_STREAM, IPPROTO_TCP, fileno)

    return factory


@pytest.fixture
def mock_tcp_socket(mock_tcp_socket_factory: Callable[..., MagicMock]) -> MagicMock:
    return mock_tcp_socket_factory()


@pytest.fixture
def mock_udp_socket(mock_socket_factory: Callable[..., MagicMock]) -> MagicMock:
    return mock_socket_factory(AF_INET, SOCK_DGRAM, 0)


@pytest.fixture
def mock_ssl_socket(mocker: MockerFixture) -> MagicMock:
    mock_socket = mocker.NonCallableMagicMock(spec=SSLSocket)
    mock_socket.family = AF_INET
    mock_socket.type = SOCK_STREAM
    mock_socket.proto = IPPROTO_TCP
    mock_socket.fileno.return_value = 123
    return mock_socket


@pytest.fixture
def mock_ssl_object(mocker: MockerFixture) -> MagicMock:
    mock_ssl_object = mocker.NonCallableMagicMock(spec=SSLObject)
    mock_ssl_object.do_handshake.return_value = None
    return mock_ssl_object


@pytest.fixture
def mock_ssl_context(mocker: MockerFixture, mock_ssl_object: MagicMock) -> MagicMock:
    mock_ssl_context = mocker.NonCallableMagicMock(spec=SSLContext)
    mock_ssl_context.wrap_bio.return_value = mock_ssl_object
    return mock_ssl_context


@pytest.fixture
def mock_channel_factory(mocker: MockerFixture) -> Callable[..., MagicMock]:
    def factory(family: int = AF_INET, *, secure: bool = False) -> MagicMock:
        mock_channel = mocker.NonCallableMagicMock(spec=Channel)
        mock_channel.family = family
        mock_channel.is_secure.return_value = secure
        mock_channel.is_closed.return_value = False
        mock_channel.fileno.return_value = 123

        def close_side_effect() -> None:
            mock_channel.is_closed.return_value = True
            mock_channel.fileno.return_value = -1

        mock_channel.close.side_effect = close_side_effect
        return mock_channel

    return factory


@pytest.fixture
def mock_channel(mock_channel_factory: Callable[..., MagicMock]) -> MagicMock:
    return mock_channel_factory()


@pytest.fixture
def fake_clock(mocker: MockerFixture) -> list[float]:
    """Current time seen by the timeout computations, advanced by hand."""
    now: list[float] = [0.0]
    mock_time = mocker.patch("netdial.lowlevel._utils.time")
    mock_time.perf_counter.side_effect = lambda: now[0]
    return now
