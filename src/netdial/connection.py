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
"""TCP connection establishment and I/O module."""

from __future__ import annotations

__all__ = [
    "ConnectRequest",
    "Connection",
    "SecureChannelFactory",
    "connect",
    "connect_request",
    "create_tls_channel",
]

import contextlib
import dataclasses
import errno as _errno
import logging
import selectors
import socket as _socket
import warnings
from collections.abc import Callable, Iterator
from types import TracebackType
from typing import TYPE_CHECKING, Self, TypeAlias

try:
    import ssl
except ImportError:  # pragma: no cover
    _ssl_module = None
else:
    _ssl_module = ssl
    del ssl

from .exceptions import (
    ChannelClosedError,
    ChannelIOError,
    ChannelTimeoutError,
    ConnectError,
    ErrorReason,
    SecureHandshakeError,
)
from .lowlevel import _utils, constants
from .lowlevel.resolver import FamilyPreference, resolve_candidates
from .lowlevel.socket import SocketAddress, bind_local_ipv4_address, connect_with_deadline, new_socket_address
from .lowlevel.transports.abc import Channel
from .lowlevel.transports.socket import PlainChannel, SecureChannel

if TYPE_CHECKING:
    from ssl import SSLContext

    from _typeshed import WriteableBuffer

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, kw_only=True, slots=True)
class ConnectRequest:
    """
    Parameters of a connection attempt.
    """

    host: str
    """The host name or numeric address of the server."""

    port: int
    """The server port."""

    secure: bool = False
    """Negotiate a TLS session once connected."""

    local_address: str | None = None
    """If non-empty, IPv4 connections are bound to this local address (with an ephemeral port)."""

    io_timeout: float = 0
    """Deadline (in seconds) of the connect phase, then of every read and write. ``0`` means no deadline."""

    family: FamilyPreference = FamilyPreference.ANY
    """Restrict the resolution to a given address family."""

    ssl_context: SSLContext | None = None
    """The :class:`ssl.SSLContext` to use. A default context with certificate verification is created if not set."""

    server_hostname: str | None = None
    """The name the server certificate is matched against. Defaults to :attr:`host`; an empty string disables the check."""

    ssl_handshake_timeout: float | None = None
    """Handshake deadline. Defaults to :attr:`io_timeout` if set, otherwise to 60 seconds."""

    ssl_shutdown_timeout: float | None = None
    """Closing handshake deadline. Defaults to 30 seconds."""

    ssl_standard_compatible: bool | None = None
    """If :data:`False`, skip the closing handshake and accept a peer which does the same. Defaults to :data:`True`."""

    def __post_init__(self) -> None:
        if not isinstance(self.host, str):
            raise TypeError(f"Expected a str host, got {self.host!r}")
        _utils.validate_port(self.port)
        object.__setattr__(self, "io_timeout", _utils.validate_timeout_delay(self.io_timeout, positive_check=True))
        object.__setattr__(self, "family", FamilyPreference.from_value(self.family))

        if not self.secure:
            for option in ("ssl_context", "server_hostname", "ssl_handshake_timeout", "ssl_shutdown_timeout"):
                if getattr(self, option) is not None:
                    raise ValueError(f"{option} is only meaningful with ssl")
            if self.ssl_standard_compatible is not None:
                raise ValueError("ssl_standard_compatible is only meaningful with ssl")

        if self.ssl_handshake_timeout is not None:
            _utils.validate_timeout_delay(self.ssl_handshake_timeout, positive_check=True)
        if self.ssl_shutdown_timeout is not None:
            _utils.validate_timeout_delay(self.ssl_shutdown_timeout, positive_check=True)


SecureChannelFactory: TypeAlias = Callable[[Channel, ConnectRequest], Channel]
"""Callable which establishes a secure session over a connected clear text channel."""


class Connection:
    """
    An established TCP connection, in clear text or secured with TLS.

    Created by :func:`connect`. Concurrent use of the same connection from several threads must be serialized by the caller.
    """

    __slots__ = ("__channel", "__family", "__weakref__")

    def __init__(self, channel: Channel) -> None:
        """
        Parameters:
            channel: The connected channel. The connection takes its ownership.
        """
        self.__channel: Channel | None = channel
        self.__family: int = channel.family

    def __del__(self, *, _warn: _utils.WarnCallback = warnings.warn) -> None:
        try:
            channel = self.__channel
        except AttributeError:
            return
        if channel is not None and not channel.is_closed():
            _warn(f"unclosed connection {self!r}", ResourceWarning, source=self)
            channel.close()

    def __repr__(self) -> str:
        try:
            channel = self.__channel
        except AttributeError:
            return f"<{self.__class__.__name__} (partially initialized)>"
        if channel is None:
            return f"<{self.__class__.__name__} (closed)>"
        return f"<{self.__class__.__name__} channel={channel!r}>"

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        self.close()

    @property
    def family(self) -> int:
        """The address family of the connection."""
        return self.__family

    def is_closed(self) -> bool:
        """
        Checks if the connection is in a closed state.

        If :data:`True`, all future operations on the connection object will raise a :exc:`.ChannelClosedError`.

        Returns:
            the connection state.
        """
        channel = self.__channel
        return channel is None or channel.is_closed()

    def is_secure(self) -> bool:
        """
        Returns:
            :data:`True` if the data is exchanged through a TLS session.
        """
        channel = self.__channel
        return channel is not None and channel.is_secure()

    def close(self) -> None:
        """
        Close the connection.

        The TLS session, if any, is shut down first, then the socket is closed.

        Can be safely called multiple times.
        """
        channel, self.__channel = self.__channel, None
        if channel is not None:
            channel.close()

    def recv_into(self, buffer: WriteableBuffer, nbytes: int = 0) -> int:
        """
        Read into the given `buffer` with a single underlying transfer.

        Parameters:
            buffer: where to write the received bytes.
            nbytes: the maximum number of bytes to read. If ``0``, the size of `buffer` is used.

        Raises:
            ChannelClosedError: the connection is closed.
            ChannelTimeoutError: no data arrived before the timeout.
            ChannelIOError: the read failed.

        Returns:
            the number of bytes written. ``0`` means the peer closed the connection.
        """
        if nbytes < 0:
            raise ValueError("'nbytes' must be a positive or null integer")
        with self.__convert_channel_error("receiving data") as channel:
            return channel.recv_into(buffer, nbytes)

    def recv(self, bufsize: int) -> bytes:
        """
        Read and return up to `bufsize` bytes with a single underlying transfer.

        Parameters:
            bufsize: the maximum buffer size.

        Raises:
            ChannelClosedError: the connection is closed.
            ChannelTimeoutError: no data arrived before the timeout.
            ChannelIOError: the read failed.

        Returns:
            some :class:`bytes`. An empty byte buffer means the peer closed the connection.
        """
        if bufsize < 0:
            raise ValueError("'bufsize' must be a positive or null integer")
        with self.__convert_channel_error("receiving data") as channel:
            return channel.recv(bufsize)

    def send(self, data: bytes | bytearray | memoryview) -> int:
        """
        Send `data` with a single underlying transfer.

        The data may be partially sent: the caller must send the remainder again.

        Parameters:
            data: the bytes to send.

        Raises:
            ChannelClosedError: the connection is closed.
            ChannelTimeoutError: the data could not be sent before the timeout.
            ChannelIOError: the write failed.

        Returns:
            the number of bytes sent.
        """
        with self.__convert_channel_error("sending data") as channel:
            return channel.send(data)

    def fileno(self) -> int:
        """
        Returns:
            the socket's file descriptor, or ``-1`` if the connection is closed.
        """
        channel = self.__channel
        if channel is None:
            return -1
        return channel.fileno()

    def get_local_address(self) -> SocketAddress:
        """
        Returns the local socket IP address.

        Raises:
            ChannelClosedError: the connection is closed.
        """
        with self.__convert_channel_error("getting local address") as channel:
            return new_socket_address(channel.getsockname(), self.__family)

    def get_remote_address(self) -> SocketAddress:
        """
        Returns the remote socket IP address.

        Raises:
            ChannelClosedError: the connection is closed.
        """
        with self.__convert_channel_error("getting remote address") as channel:
            return new_socket_address(channel.getpeername(), self.__family)

    @contextlib.contextmanager
    def __convert_channel_error(self, operation: str) -> Iterator[Channel]:
        channel = self.__channel
        if channel is None or channel.is_closed():
            raise ChannelClosedError()
        try:
            yield channel
        except ChannelIOError:
            raise
        except TimeoutError as exc:
            reason = ErrorReason.from_errno(_errno.ETIMEDOUT)
            raise ChannelTimeoutError(f"Error while {operation}: {reason}", reason) from exc
        except _ssl_module.SSLError if _ssl_module else () as exc:
            reason = ErrorReason.from_ssl_error(exc)
            raise ChannelIOError(f"Error while {operation}: {reason}", reason) from exc
        except OSError as exc:
            if exc.errno in constants.CLOSED_SOCKET_ERRNOS and channel.is_closed():
                raise ChannelClosedError() from exc
            reason = ErrorReason.from_os_error(exc)
            raise ChannelIOError(f"Error while {operation}: {reason}", reason) from exc


def connect(
    host: str,
    port: int,
    secure: bool = False,
    local_address: str | None = None,
    io_timeout: float = 0,
    *,
    family: FamilyPreference | int | str = FamilyPreference.ANY,
    ssl_context: SSLContext | None = None,
    server_hostname: str | None = None,
    ssl_handshake_timeout: float | None = None,
    ssl_shutdown_timeout: float | None = None,
    ssl_standard_compatible: bool | None = None,
    secure_channel_factory: SecureChannelFactory | None = None,
    selector_factory: Callable[[], selectors.BaseSelector] | None = None,
) -> Connection:
    """
    Opens a TCP connection to ``host:port``.

    Each address `host` resolves to is tried in turn until one accepts the connection.

    Parameters:
        host: The host name or numeric address of the server.
        port: The server port.
        secure: Negotiate a TLS session once connected.
        local_address: If non-empty, IPv4 connections are bound to this local address.
        io_timeout: Deadline (in seconds) of each connection attempt, then of every read and write.
                    ``0`` means no deadline.

    Keyword Arguments:
        family: Restrict the resolution to a given address family.
        ssl_context: The :class:`ssl.SSLContext` to use for a secure connection.
        server_hostname: The name the server certificate is matched against. Defaults to `host`.
        ssl_handshake_timeout: Handshake deadline. Defaults to `io_timeout` if set, otherwise to ``60.0`` seconds.
        ssl_shutdown_timeout: Closing handshake deadline. ``30.0`` seconds if :data:`None` (default).
        ssl_standard_compatible: If :data:`False`, skip the closing handshake when closing the connection,
                                 and don't raise an exception if the peer does the same.
        secure_channel_factory: If given, replaces the TLS implementation used when `secure` is true.
        selector_factory: If given, the callable object to use to create a new :class:`selectors.BaseSelector` instance
                          while waiting for the connection.

    Raises:
        ResolutionError: `host` could not be resolved.
        ConnectError: no resolved address accepted the connection.
        SecureHandshakeError: the TLS negotiation failed.

    Returns:
        the established :class:`Connection`.
    """
    request = ConnectRequest(
        host=host,
        port=port,
        secure=secure,
        local_address=local_address,
        io_timeout=io_timeout,
        family=family,  # type: ignore[arg-type]
        ssl_context=ssl_context,
        server_hostname=server_hostname,
        ssl_handshake_timeout=ssl_handshake_timeout,
        ssl_shutdown_timeout=ssl_shutdown_timeout,
        ssl_standard_compatible=ssl_standard_compatible,
    )
    return connect_request(request, secure_channel_factory=secure_channel_factory, selector_factory=selector_factory)


def connect_request(
    request: ConnectRequest,
    *,
    secure_channel_factory: SecureChannelFactory | None = None,
    selector_factory: Callable[[], selectors.BaseSelector] | None = None,
) -> Connection:
    """
    Same as :func:`connect`, with the parameters gathered in a :class:`ConnectRequest`.
    """
    if secure_channel_factory is None:
        secure_channel_factory = create_tls_channel

    sock = _open_connected_socket(request, selector_factory)

    try:
        transport = PlainChannel(sock)
    except BaseException:
        sock.close()
        raise
    finally:
        del sock

    channel: Channel
    if request.secure:
        try:
            channel = secure_channel_factory(transport, request)
        except _ssl_module.SSLError if _ssl_module else () as exc:
            transport.close()
            raise SecureHandshakeError(request.host, request.port, ErrorReason.from_ssl_error(exc)) from exc
        except OSError as exc:
            transport.close()
            raise SecureHandshakeError(request.host, request.port, ErrorReason.from_os_error(exc)) from exc
        except BaseException:
            transport.close()
            raise
    else:
        channel = transport

    try:
        channel.settimeout(_utils.to_socket_timeout(request.io_timeout))
    except BaseException:
        channel.close()
        raise

    return Connection(channel)


def create_tls_channel(transport: Channel, request: ConnectRequest) -> Channel:
    """
    Default :data:`SecureChannelFactory`: a :class:`.SecureChannel` using the stdlib :mod:`ssl` module.

    Raises:
        RuntimeError: the :mod:`ssl` module is not available.
        OSError: the negotiation failed.
    """
    if _ssl_module is None:
        raise RuntimeError("stdlib ssl module not available")

    server_hostname = request.server_hostname
    if server_hostname is None:
        server_hostname = request.host

    ssl_context = request.ssl_context
    if ssl_context is None:
        ssl_context = _ssl_module.create_default_context()
        if not server_hostname:
            ssl_context.check_hostname = False
        with contextlib.suppress(AttributeError):
            ssl_context.options &= ~_ssl_module.OP_IGNORE_UNEXPECTED_EOF

    handshake_timeout = request.ssl_handshake_timeout
    if handshake_timeout is None and request.io_timeout > 0:
        handshake_timeout = request.io_timeout

    standard_compatible = request.ssl_standard_compatible
    if standard_compatible is None:
        standard_compatible = True

    return SecureChannel.wrap(
        transport,
        ssl_context,
        server_hostname=server_hostname,
        handshake_timeout=handshake_timeout,
        shutdown_timeout=request.ssl_shutdown_timeout,
        standard_compatible=standard_compatible,
    )


def _open_connected_socket(
    request: ConnectRequest,
    selector_factory: Callable[[], selectors.BaseSelector] | None,
) -> _socket.socket:
    candidates = resolve_candidates(request.host, request.port, request.family)

    last_error: OSError | None = None
    ipv6_binding_warned: bool = False
    for candidate in candidates:
        try:
            sock = _socket.socket(candidate.family, candidate.type, candidate.proto)
        except OSError as exc:
            logger.debug("Cannot create a socket for %s: %s", candidate, exc)
            last_error = exc
            continue

        try:
            if request.local_address:
                if candidate.family == _socket.AF_INET:
                    bind_local_ipv4_address(sock, request.local_address)
                elif not ipv6_binding_warned:
                    ipv6_binding_warned = True
                    logger.warning(
                        "Local address %r is not used for %s: only IPv4 connections can be bound to a local address",
                        request.local_address,
                        candidate,
                    )
            connect_with_deadline(sock, candidate.address, request.io_timeout, selector_factory=selector_factory)
        except OSError as exc:
            sock.close()
            logger.debug("Connection to %s failed: %s", candidate, exc)
            last_error = exc
            continue
        except BaseException:
            sock.close()
            raise

        logger.debug("Connected to %s", candidate)
        return sock

    # resolve_candidates() never returns an empty list
    assert last_error is not None  # nosec assert_used
    try:
        raise ConnectError(request.host, request.port, ErrorReason.from_os_error(last_error)) from last_error
    finally:
        del last_error
