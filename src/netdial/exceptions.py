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
"""Exceptions definition module.

Here are all the exception classes defined and used by the library.
"""

from __future__ import annotations

__all__ = [
    "ChannelClosedError",
    "ChannelIOError",
    "ChannelTimeoutError",
    "ConnectError",
    "ErrorReason",
    "InterfaceLookupError",
    "NetDialError",
    "ReasonKind",
    "ResolutionError",
    "SecureHandshakeError",
    "ServerConnectionError",
]

import dataclasses
import enum
import errno as _errno
import os
import socket as _socket
from typing import TYPE_CHECKING, Self

if TYPE_CHECKING:
    from ssl import SSLError


@enum.unique
class ReasonKind(enum.Enum):
    """Origin of an :class:`ErrorReason` code."""

    SYSTEM = "system"
    """:attr:`ErrorReason.code` is an :mod:`errno` value."""

    RESOLVER = "resolver"
    """:attr:`ErrorReason.code` is a ``socket.EAI_*`` value."""

    TLS = "tls"
    """:attr:`ErrorReason.code` is an OpenSSL verification or library code, if any."""


@dataclasses.dataclass(frozen=True, slots=True)
class ErrorReason:
    """The structured cause of a failure."""

    kind: ReasonKind
    code: int | None
    message: str

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_errno(cls, errno: int) -> Self:
        return cls(ReasonKind.SYSTEM, errno, os.strerror(errno))

    @classmethod
    def from_os_error(cls, exc: OSError) -> Self:
        match exc:
            case _socket.gaierror():
                return cls.from_gai_error(exc)
            case TimeoutError(errno=None):
                return cls.from_errno(_errno.ETIMEDOUT)
            case OSError(errno=int(errno), strerror=str(strerror)):
                return cls(ReasonKind.SYSTEM, errno, strerror)
            case _:
                return cls(ReasonKind.SYSTEM, exc.errno, str(exc) or type(exc).__name__)

    @classmethod
    def from_gai_error(cls, exc: _socket.gaierror) -> Self:
        return cls(ReasonKind.RESOLVER, exc.errno, exc.strerror or str(exc))

    @classmethod
    def from_ssl_error(cls, exc: SSLError) -> Self:
        verify_message: str | None = getattr(exc, "verify_message", None)
        verify_code: int | None = getattr(exc, "verify_code", None)
        if verify_message:
            return cls(ReasonKind.TLS, verify_code, f"certificate verify failed: {verify_message}")
        reason: str | None = getattr(exc, "reason", None)
        return cls(ReasonKind.TLS, exc.errno, reason or exc.strerror or str(exc) or type(exc).__name__)


class NetDialError(Exception):
    """Base class of every error raised by the library."""

    def __init__(self, message: str, reason: ErrorReason) -> None:
        """
        Parameters:
            message: Error message.
            reason: The structured cause.
        """

        super().__init__(message)

        self.reason: ErrorReason = reason
        """The structured cause."""


class ServerConnectionError(NetDialError):
    """A connection to ``host:port`` could not be established."""

    def __init__(self, host: str, port: int, reason: ErrorReason) -> None:
        """
        Parameters:
            host: The requested host name.
            port: The requested port.
            reason: The structured cause.
        """

        super().__init__(f"Unable to connect to server {host}:{port}: {reason}", reason)

        self.host: str = host
        """The requested host name."""

        self.port: int = port
        """The requested port."""


class ResolutionError(ServerConnectionError):
    """The host name could not be resolved to any usable address."""


class ConnectError(ServerConnectionError):
    """Every resolved address has been tried without success."""


class SecureHandshakeError(ServerConnectionError):
    """The TLS negotiation failed after a successful TCP connection."""


class ChannelIOError(NetDialError, OSError):
    """A read or a write on a connection failed."""

    def __init__(self, message: str, reason: ErrorReason) -> None:
        """
        Parameters:
            message: Error message.
            reason: The structured cause.
        """

        super().__init__(message, reason)

        if reason.kind is ReasonKind.SYSTEM:
            self.errno = reason.code


class ChannelTimeoutError(ChannelIOError, TimeoutError):
    """No data could be transferred before the connection timeout elapsed."""


class ChannelClosedError(ChannelIOError):
    """Error raised when trying to do an operation on a closed connection."""

    def __init__(self) -> None:
        super().__init__("Connection is closed", ErrorReason.from_errno(_errno.EBADF))


class InterfaceLookupError(NetDialError):
    """The IPv4 address of a local network interface could not be retrieved."""

    def __init__(self, interface: str, reason: ErrorReason) -> None:
        """
        Parameters:
            interface: The requested interface name.
            reason: The structured cause.
        """

        super().__init__(f"Unable to get IPv4 address of interface {interface!r}: {reason}", reason)

        self.interface: str = interface
        """The requested interface name."""
