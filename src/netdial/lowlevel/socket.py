# Copyright 2021-2025, Francis Clairicia-Rose-Claire-Josephine
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
#
"""Network socket helper module."""

from __future__ import annotations

__all__ = [
    "IPv4SocketAddress",
    "IPv6SocketAddress",
    "SocketAddress",
    "bind_local_ipv4_address",
    "connect_with_deadline",
    "new_socket_address",
]

import errno as _errno
import math
import selectors
import socket as _socket
from collections.abc import Callable
from typing import Any, Literal, NamedTuple, TypeAlias, overload

from . import _utils, constants


class IPv4SocketAddress(NamedTuple):
    """An internet (IPv4) socket address."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"({self.host!r}, {self.port:d})"


class IPv6SocketAddress(NamedTuple):
    """An internet (IPv6) socket address."""

    host: str
    port: int
    flowinfo: int = 0
    scope_id: int = 0

    def __str__(self) -> str:
        return f"({self.host!r}, {self.port:d})"


SocketAddress: TypeAlias = IPv4SocketAddress | IPv6SocketAddress
"""An internet socket address, either IPv4 or IPv6."""


@overload
def new_socket_address(addr: tuple[str, int], family: Literal[_socket.AddressFamily.AF_INET]) -> IPv4SocketAddress: ...


@overload
def new_socket_address(
    addr: tuple[str, int] | tuple[str, int, int, int], family: Literal[_socket.AddressFamily.AF_INET6]
) -> IPv6SocketAddress: ...


@overload
def new_socket_address(addr: tuple[Any, ...], family: int) -> SocketAddress: ...


def new_socket_address(addr: tuple[Any, ...], family: int) -> SocketAddress:
    """
    Factory to create a :data:`SocketAddress` from `addr`.

    Example:
        >>> import socket
        >>> new_socket_address(("127.0.0.1", 12345), socket.AF_INET)
        IPv4SocketAddress(host='127.0.0.1', port=12345)
        >>> new_socket_address(("::1", 12345), socket.AF_INET6)
        IPv6SocketAddress(host='::1', port=12345, flowinfo=0, scope_id=0)

    Parameters:
        addr: The address in the form ``(host, port)`` or ``(host, port, flow, scope_id)``.
        family: The socket family.

    Raises:
        ValueError: Invalid `family`.
        TypeError: Invalid `addr`.

    Returns:
        a :data:`SocketAddress` named tuple.
    """
    match family:
        case _socket.AddressFamily.AF_INET:
            return IPv4SocketAddress(*addr)
        case _socket.AddressFamily.AF_INET6:
            return IPv6SocketAddress(*addr)
        case _:
            raise ValueError(f"Unsupported address family {family!r}")


def bind_local_ipv4_address(sock: _socket.socket, local_address: str) -> None:
    """
    Binds an IPv4 socket to `local_address` with an ephemeral port.

    Parameters:
        sock: An unconnected ``AF_INET`` socket.
        local_address: A dotted-quad IPv4 address.

    Raises:
        OSError: The bind failed. The message includes the address.
    """
    if sock.family != _socket.AF_INET:
        raise ValueError("Only AF_INET sockets can be bound to a local interface address")
    bind_address = (local_address, 0)
    try:
        sock.bind(bind_address)
    except OSError as exc:
        raise _utils.convert_socket_bind_error(exc, bind_address) from None


def connect_with_deadline(
    sock: _socket.socket,
    address: tuple[Any, ...],
    timeout: float,
    *,
    selector_factory: Callable[[], selectors.BaseSelector] | None = None,
) -> None:
    """
    Connects `sock` to `address`, giving up after `timeout` seconds.

    With a deadline, the socket is switched to non-blocking mode, the connection is started
    and the socket is polled until it becomes writable. The outcome is then read from ``SO_ERROR``.
    The socket is put back in blocking mode on success.

    The socket is not closed on failure.

    Parameters:
        sock: An unconnected :data:`~socket.SOCK_STREAM` socket.
        address: The remote address, as returned by :func:`socket.getaddrinfo`.
        timeout: The maximum amount of seconds to wait. ``0`` (or :data:`math.inf`) performs a plain blocking connect.
        selector_factory: If given, the callable object to use to create a new :class:`selectors.BaseSelector` instance.
                          Otherwise, :class:`selectors.PollSelector` is used on Unix platforms
                          and :class:`selectors.SelectSelector` on Windows.

    Raises:
        TimeoutError: The connection did not complete in time.
        OSError: The connection failed.
    """
    timeout = _utils.validate_timeout_delay(timeout, positive_check=True)
    if timeout == 0 or timeout == math.inf:
        sock.connect(address)
        return

    if selector_factory is None:
        selector_factory = getattr(selectors, "PollSelector", selectors.SelectSelector)

    sock.setblocking(False)
    errno = sock.connect_ex(address)
    if errno in constants.CONNECT_IN_PROGRESS_ERRNOS:
        with selector_factory() as selector:
            try:
                selector.register(sock, selectors.EVENT_WRITE)
            except ValueError as exc:
                raise _utils.error_from_errno(_errno.EBADF) from exc
            if not selector.select(timeout):
                raise TimeoutError(_errno.ETIMEDOUT, "Connection timed out")
        _utils.check_real_socket_state(sock)
    elif errno != 0:
        raise _utils.error_from_errno(errno)
    sock.setblocking(True)
