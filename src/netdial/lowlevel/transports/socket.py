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
"""Channel implementations module wrapping sockets."""

from __future__ import annotations

__all__ = [
    "PlainChannel",
    "SecureChannel",
]

import contextlib
import errno
import math
import socket
import warnings
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Self, TypeVar, TypeVarTuple, Unpack

try:
    import ssl
except ImportError:  # pragma: no cover
    _ssl_module = None
else:
    _ssl_module = ssl
    del ssl

from .. import _utils, constants
from .abc import Channel

if TYPE_CHECKING:
    from ssl import MemoryBIO, SSLContext, SSLObject

    from _typeshed import WriteableBuffer

_T_PosArgs = TypeVarTuple("_T_PosArgs")
_T_Return = TypeVar("_T_Return")


class PlainChannel(Channel):
    """
    A clear text channel which wraps a connected stream :class:`~socket.socket`.
    """

    __slots__ = ("__socket",)

    def __init__(self, sock: socket.socket) -> None:
        """
        Parameters:
            sock: The connected :data:`~socket.SOCK_STREAM` socket to wrap.
        """
        super().__init__()

        _utils.check_socket_no_ssl(sock)
        if sock.type != socket.SOCK_STREAM:
            raise ValueError("A 'SOCK_STREAM' socket is expected")
        self.__socket: socket.socket = sock

    def __del__(self, *, _warn: _utils.WarnCallback = warnings.warn) -> None:
        try:
            sock: socket.socket = self.__socket
        except AttributeError:
            return
        if sock.fileno() >= 0:
            _warn(f"unclosed channel {self!r}", ResourceWarning, source=self)
            sock.close()

    def __repr__(self) -> str:
        try:
            return f"<{self.__class__.__name__} socket={self.__socket!r}>"
        except AttributeError:
            return f"<{self.__class__.__name__} (partially initialized)>"

    @_utils.inherit_doc(Channel)
    def is_closed(self) -> bool:
        return self.__socket.fileno() < 0

    @_utils.inherit_doc(Channel)
    def is_secure(self) -> bool:
        return False

    @_utils.inherit_doc(Channel)
    def close(self) -> None:
        _utils.close_stream_socket(self.__socket)

    @_utils.inherit_doc(Channel)
    def recv_into(self, buffer: WriteableBuffer, nbytes: int = 0) -> int:
        return self.__socket.recv_into(buffer, nbytes)

    @_utils.inherit_doc(Channel)
    def send(self, data: bytes | bytearray | memoryview) -> int:
        return self.__socket.send(data)

    @_utils.inherit_doc(Channel)
    def settimeout(self, timeout: float | None) -> None:
        self.__socket.settimeout(timeout)

    @_utils.inherit_doc(Channel)
    def fileno(self) -> int:
        return self.__socket.fileno()

    @property
    @_utils.inherit_doc(Channel)
    def family(self) -> int:
        return self.__socket.family

    @_utils.inherit_doc(Channel)
    def getsockname(self) -> Any:
        return self.__socket.getsockname()

    @_utils.inherit_doc(Channel)
    def getpeername(self) -> Any:
        return self.__socket.getpeername()


class SecureChannel(Channel):
    """
    SSL/TLS session established over a clear text channel.

    The session state lives in a :class:`ssl.SSLObject` fed through memory buffers,
    the encrypted bytes go through the wrapped channel.

    The timeout set with :meth:`settimeout` bounds each call as a whole, whatever the number of
    transfers needed on the wrapped channel. A timed out call leaves the session usable.
    """

    __slots__ = (
        "__transport",
        "__ssl_object",
        "__read_bio",
        "__write_bio",
        "__pending",
        "__timeout",
        "__shutdown_timeout",
        "__standard_compatible",
    )

    def __init__(
        self,
        transport: Channel,
        ssl_object: SSLObject,
        read_bio: MemoryBIO,
        write_bio: MemoryBIO,
        *,
        shutdown_timeout: float,
        standard_compatible: bool,
        pending: bytearray | None = None,
    ) -> None:
        """
        Use :meth:`wrap` instead.
        """
        super().__init__()

        self.__transport: Channel = transport
        self.__ssl_object: SSLObject = ssl_object
        self.__read_bio: MemoryBIO = read_bio
        self.__write_bio: MemoryBIO = write_bio
        self.__pending: bytearray = pending if pending is not None else bytearray()
        self.__timeout: float = math.inf
        self.__shutdown_timeout: float = shutdown_timeout
        self.__standard_compatible: bool = standard_compatible

    @classmethod
    def wrap(
        cls,
        transport: Channel,
        ssl_context: SSLContext,
        *,
        server_hostname: str | None,
        handshake_timeout: float | None = None,
        shutdown_timeout: float | None = None,
        standard_compatible: bool = True,
    ) -> Self:
        """
        Performs the client side TLS handshake over `transport`.

        `transport` is not closed if the handshake fails.

        Parameters:
            transport: The connected clear text channel.
            ssl_context: a :class:`ssl.SSLContext` object to use to create the session.
            server_hostname: sets or overrides the hostname that the target server's certificate will be matched against.
            handshake_timeout: The time in seconds to wait for the TLS handshake to complete before aborting the connection.
                               ``60.0`` seconds if :data:`None` (default).
            shutdown_timeout: The time in seconds to wait for the SSL shutdown to complete before aborting the connection.
                              ``30.0`` seconds if :data:`None` (default).
            standard_compatible: If :data:`False`, skip the closing handshake when closing the connection,
                                 and don't raise an exception if the peer does the same.

        Raises:
            RuntimeError: The :mod:`ssl` module is not available.
            ssl.SSLError: The negotiation or the certificate verification failed.
            TimeoutError: The handshake did not complete in time.
            OSError: The transport failed during the handshake.
        """
        if _ssl_module is None:
            raise RuntimeError("stdlib ssl module not available")

        if handshake_timeout is None:
            handshake_timeout = constants.SSL_HANDSHAKE_TIMEOUT
        if shutdown_timeout is None:
            shutdown_timeout = constants.SSL_SHUTDOWN_TIMEOUT

        handshake_timeout = _utils.validate_timeout_delay(handshake_timeout, positive_check=True)
        shutdown_timeout = _utils.validate_timeout_delay(shutdown_timeout, positive_check=True)

        read_bio = _ssl_module.MemoryBIO()
        write_bio = _ssl_module.MemoryBIO()
        ssl_object = ssl_context.wrap_bio(
            read_bio,
            write_bio,
            server_side=False,
            server_hostname=server_hostname or None,
        )

        pending = bytearray()
        timeout = _to_deadline_timeout(handshake_timeout)
        _, timeout = _retry_ssl_method(transport, read_bio, write_bio, pending, timeout, ssl_object.do_handshake)
        _flush_write_bio(transport, write_bio, pending, timeout)

        return cls(
            transport,
            ssl_object,
            read_bio,
            write_bio,
            shutdown_timeout=shutdown_timeout,
            standard_compatible=bool(standard_compatible),
            pending=pending,
        )

    def __del__(self, *, _warn: _utils.WarnCallback = warnings.warn) -> None:
        try:
            transport: Channel = self.__transport
        except AttributeError:
            return
        if not transport.is_closed():
            _warn(f"unclosed channel {self!r}", ResourceWarning, source=self)
            transport.close()

    def __repr__(self) -> str:
        try:
            return f"<{self.__class__.__name__} transport={self.__transport!r}>"
        except AttributeError:
            return f"<{self.__class__.__name__} (partially initialized)>"

    @_utils.inherit_doc(Channel)
    def is_closed(self) -> bool:
        return self.__transport.is_closed()

    @_utils.inherit_doc(Channel)
    def is_secure(self) -> bool:
        return True

    @_utils.inherit_doc(Channel)
    def close(self) -> None:
        transport = self.__transport
        if transport.is_closed():
            return
        try:
            if self.__standard_compatible:
                timeout = _to_deadline_timeout(self.__shutdown_timeout)
                _, timeout = self._retry_ssl_method(timeout, self.__ssl_object.unwrap)
                _flush_write_bio(transport, self.__write_bio, self.__pending, timeout)
        except (OSError, ValueError):
            pass
        finally:
            self.__read_bio.write_eof()
            self.__write_bio.write_eof()
            self.__pending.clear()
            transport.close()

    @_utils.inherit_doc(Channel)
    def recv_into(self, buffer: WriteableBuffer, nbytes: int = 0) -> int:
        assert _ssl_module is not None, "stdlib ssl module not available"  # nosec assert_used
        with memoryview(buffer) as view:
            buffer_size = view.nbytes
        if nbytes < 0:
            raise ValueError("negative buffersize in recv_into")
        if nbytes > buffer_size:
            raise ValueError("buffer too small for requested bytes")
        nbytes = nbytes or buffer_size
        if nbytes == 0:
            return 0
        try:
            nbytes, _ = self._retry_ssl_method(self.__timeout, self.__ssl_object.read, nbytes, buffer)
        except _ssl_module.SSLZeroReturnError:
            return 0
        except _ssl_module.SSLEOFError:
            if not self.__standard_compatible:
                return 0
            raise
        return nbytes

    @_utils.inherit_doc(Channel)
    def send(self, data: bytes | bytearray | memoryview) -> int:
        assert _ssl_module is not None, "stdlib ssl module not available"  # nosec assert_used
        view = memoryview(data)
        if view.itemsize != 1:
            view = view.cast("B")
        # One TLS record at most per call, the caller handles the remainder
        chunk = view[: constants.DEFAULT_STREAM_BUFSIZE]
        if not chunk:
            return 0

        transport = self.__transport
        write_bio = self.__write_bio
        pending = self.__pending

        # Records left by a previous call go first. Nothing is accepted if they cannot be sent in time.
        timeout = _flush_write_bio(transport, write_bio, pending, self.__timeout)
        try:
            sent, timeout = self._retry_ssl_method(timeout, self.__ssl_object.write, chunk)
        except _ssl_module.SSLZeroReturnError as exc:
            raise _utils.error_from_errno(errno.ECONNRESET) from exc

        # The plaintext now belongs to the session, a record that could not be sent is kept for the next call.
        with contextlib.suppress(TimeoutError):
            _flush_write_bio(transport, write_bio, pending, timeout)
        return sent

    @_utils.inherit_doc(Channel)
    def settimeout(self, timeout: float | None) -> None:
        if timeout is None:
            timeout = math.inf
        self.__timeout = _utils.validate_timeout_delay(timeout, positive_check=True)
        self.__transport.settimeout(_utils.to_socket_timeout(timeout))

    @_utils.inherit_doc(Channel)
    def fileno(self) -> int:
        return self.__transport.fileno()

    @property
    @_utils.inherit_doc(Channel)
    def family(self) -> int:
        return self.__transport.family

    @_utils.inherit_doc(Channel)
    def getsockname(self) -> Any:
        return self.__transport.getsockname()

    @_utils.inherit_doc(Channel)
    def getpeername(self) -> Any:
        return self.__transport.getpeername()

    def _retry_ssl_method(
        self,
        timeout: float,
        ssl_object_method: Callable[[Unpack[_T_PosArgs]], _T_Return],
        *args: Unpack[_T_PosArgs],
    ) -> tuple[_T_Return, float]:
        return _retry_ssl_method(
            self.__transport,
            self.__read_bio,
            self.__write_bio,
            self.__pending,
            timeout,
            ssl_object_method,
            *args,
        )


def _to_deadline_timeout(delay: float) -> float:
    # 0 means no time limit, as for socket timeouts
    if delay == 0:
        return math.inf
    return delay


def _retry_ssl_method(
    transport: Channel,
    read_bio: MemoryBIO,
    write_bio: MemoryBIO,
    pending: bytearray,
    timeout: float,
    ssl_object_method: Callable[[Unpack[_T_PosArgs]], _T_Return],
    *args: Unpack[_T_PosArgs],
) -> tuple[_T_Return, float]:
    """
    Calls `ssl_object_method` until the session no longer needs transport I/O.

    `timeout` is shared by all the transport calls.

    Returns:
        a tuple with the result of the method and the timeout which is deduced from the waited time.
        Records produced by a successful call are left in `write_bio`.
    """
    assert _ssl_module is not None, "stdlib ssl module not available"  # nosec assert_used
    while True:
        try:
            return ssl_object_method(*args), timeout
        except _ssl_module.SSLWantReadError:
            try:
                # Flush any pending writes first
                timeout = _flush_write_bio(transport, write_bio, pending, timeout)
                data, timeout = _call_with_timeout(transport, timeout, transport.recv, constants.DEFAULT_STREAM_BUFSIZE)
            except TimeoutError:
                raise
            except OSError:
                read_bio.write_eof()
                write_bio.write_eof()
                raise
            if data:
                read_bio.write(data)
            else:
                read_bio.write_eof()
        except _ssl_module.SSLWantWriteError:
            timeout = _flush_write_bio(transport, write_bio, pending, timeout)
        except _ssl_module.SSLError:
            # Try to deliver the alert to the peer, if any.
            try:
                _flush_write_bio(transport, write_bio, pending, timeout)
            except OSError:
                pass
            read_bio.write_eof()
            write_bio.write_eof()
            raise


def _flush_write_bio(transport: Channel, write_bio: MemoryBIO, pending: bytearray, timeout: float) -> float:
    if write_bio.pending:
        pending += write_bio.read()
    while pending:
        sent, timeout = _call_with_timeout(transport, timeout, transport.send, pending)
        del pending[:sent]
    return timeout


def _call_with_timeout(
    transport: Channel,
    timeout: float,
    transport_method: Callable[[Unpack[_T_PosArgs]], _T_Return],
    *args: Unpack[_T_PosArgs],
) -> tuple[_T_Return, float]:
    if timeout <= 0:
        raise _utils.error_from_errno(errno.ETIMEDOUT)
    transport.settimeout(_utils.to_socket_timeout(timeout))
    with _utils.ElapsedTime() as elapsed:
        result = transport_method(*args)
    return result, elapsed.recompute_timeout(timeout)
