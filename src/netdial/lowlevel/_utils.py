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
from __future__ import annotations

__all__ = [
    "ElapsedTime",
    "WarnCallback",
    "check_real_socket_state",
    "check_socket_no_ssl",
    "close_stream_socket",
    "convert_socket_bind_error",
    "error_from_errno",
    "inherit_doc",
    "is_ssl_socket",
    "to_socket_timeout",
    "validate_port",
    "validate_timeout_delay",
]

import errno as _errno
import math
import os
import socket as _socket
import time
from abc import abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, Self, TypeGuard, TypeVar, overload

try:
    import ssl as _ssl
except ImportError:  # pragma: no cover
    ssl = None
else:
    ssl = _ssl
    del _ssl

if TYPE_CHECKING:
    from ssl import SSLSocket as _SSLSocket

_T_Func = TypeVar("_T_Func", bound=Callable[..., Any])


def error_from_errno(errno: int, msg: str = "{strerror}") -> OSError:
    return OSError(errno, msg.format(strerror=os.strerror(errno)))


def inherit_doc(base_cls: type[Any]) -> Callable[[_T_Func], _T_Func]:
    assert isinstance(base_cls, type)  # nosec assert_used

    def decorator(dest_func: _T_Func) -> _T_Func:
        ref_func: Any = getattr(base_cls, dest_func.__name__)
        dest_func.__doc__ = ref_func.__doc__
        return dest_func

    return decorator


def check_real_socket_state(socket: _socket.socket, error_msg: str | None = None) -> None:
    """Verify socket saved error and raise OSError if there is one

    A non-blocking connect(2) does not report its outcome directly: the socket becomes writable
    and the error (if any) is saved in the SO_ERROR socket option.
    """
    if socket.fileno() < 0:
        return
    errno = socket.getsockopt(_socket.SOL_SOCKET, _socket.SO_ERROR)
    if errno != 0:
        # The SO_ERROR is automatically reset to zero after getting the value
        if error_msg:
            raise error_from_errno(errno, error_msg)
        else:
            raise error_from_errno(errno)


def is_ssl_socket(socket: _socket.socket) -> TypeGuard[_SSLSocket]:
    if ssl is None:
        return False
    return isinstance(socket, ssl.SSLSocket)


def check_socket_no_ssl(socket: _socket.socket) -> None:
    if is_ssl_socket(socket):
        raise TypeError("ssl.SSLSocket instances are forbidden")


def close_stream_socket(sock: _socket.socket) -> None:
    try:
        sock.shutdown(_socket.SHUT_RDWR)
    except OSError:
        pass
    finally:
        sock.close()


def validate_timeout_delay(delay: float, *, positive_check: bool) -> float:
    if math.isnan(delay):
        raise ValueError("Invalid delay: NaN (not a number)")
    if positive_check and delay < 0.0:
        raise ValueError("Invalid delay: negative value")
    return float(delay)


def to_socket_timeout(delay: float) -> float | None:
    # socket.settimeout() expects None for "block indefinitely"
    if delay == 0 or delay == math.inf:
        return None
    return delay


def validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise TypeError(f"Expected an integer port, got {port!r}")
    if not (0 < port <= 0xFFFF):
        raise ValueError(f"Invalid port number: {port}")
    return port


def convert_socket_bind_error(exc: OSError, addr: Any) -> OSError:
    if exc.errno:
        msg = f"error while attempting to bind on address {addr!r}: {exc.strerror}"
        return OSError(exc.errno, msg).with_traceback(exc.__traceback__)
    else:
        msg = f"error while attempting to bind on address {addr!r}: {exc}"
        return OSError(_errno.EINVAL, msg).with_traceback(exc.__traceback__)


class WarnCallback(Protocol):
    @overload
    @abstractmethod
    def __call__(
        self,
        /,
        message: str,
        category: type[Warning] | None = None,
        stacklevel: int = 1,
        source: Any | None = None,
    ) -> None: ...

    @overload
    @abstractmethod
    def __call__(
        self,
        /,
        message: Warning,
        category: Any = None,
        stacklevel: int = 1,
        source: Any | None = None,
    ) -> None: ...


class ElapsedTime:
    __slots__ = ("_current_time_func", "_start_time", "_end_time")

    def __init__(self) -> None:
        self._current_time_func: Callable[[], float] = time.perf_counter
        self._start_time: float | None = None
        self._end_time: float | None = None

    def __enter__(self) -> Self:
        if self._start_time is not None:
            raise RuntimeError("Already entered")
        self._start_time = self._current_time_func()
        return self

    def __exit__(self, *args: Any) -> None:
        end_time = self._current_time_func()
        if self._end_time is not None:
            raise RuntimeError("Already exited")
        self._end_time = end_time

    def get_elapsed(self) -> float:
        start_time = self._start_time
        if start_time is None:
            raise RuntimeError("Not entered")
        end_time = self._end_time
        if end_time is None:
            raise RuntimeError("Within context")
        return end_time - start_time

    def recompute_timeout(self, old_timeout: float) -> float:
        # Never negative, math.inf stays math.inf
        return max(old_timeout - self.get_elapsed(), 0.0)
