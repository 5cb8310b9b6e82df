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
"""Low-level channel interface module."""

from __future__ import annotations

__all__ = ["Channel"]

from abc import ABCMeta, abstractmethod
from types import TracebackType
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from _typeshed import WriteableBuffer


class Channel(metaclass=ABCMeta):
    """
    A connected byte stream, either in clear text or secured.

    Every operation maps to at most one underlying transfer and blocks according to
    the timeout set with :meth:`settimeout`.
    """

    __slots__ = ("__weakref__",)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None) -> None:
        """
        Calls :meth:`close`.
        """
        self.close()

    @abstractmethod
    def close(self) -> None:
        """
        Closes the channel. Does nothing if it is already closed.
        """
        raise NotImplementedError

    @abstractmethod
    def is_closed(self) -> bool:
        """
        Checks if :meth:`close` has been called.

        Returns:
            :data:`True` if the channel is closed.
        """
        raise NotImplementedError

    @abstractmethod
    def is_secure(self) -> bool:
        """
        Returns:
            :data:`True` if the data is exchanged through a TLS session.
        """
        raise NotImplementedError

    def recv(self, bufsize: int) -> bytes:
        """
        Read and return up to `bufsize` bytes.

        Parameters:
            bufsize: the maximum buffer size.

        Raises:
            ValueError: Negative `bufsize`.
            TimeoutError: Operation timed out.

        Returns:
            some :class:`bytes`.

            If `bufsize` is greater than zero and an empty byte buffer is returned, this indicates an EOF.
        """
        if bufsize == 0:
            return b""
        if bufsize < 0:
            raise ValueError("'bufsize' must be a positive or null integer")

        with memoryview(bytearray(bufsize)) as buffer:
            nbytes = self.recv_into(buffer)
            if nbytes < 0:
                raise RuntimeError("channel.recv_into() returned a negative value")
            return bytes(buffer[:nbytes])

    @abstractmethod
    def recv_into(self, buffer: WriteableBuffer, nbytes: int = 0) -> int:
        """
        Read into the given `buffer`.

        Parameters:
            buffer: where to write the received bytes.
            nbytes: the maximum number of bytes to read. If ``0``, the size of `buffer` is used.

        Raises:
            TimeoutError: Operation timed out.

        Returns:
            the number of bytes written.

            Returning ``0`` for a non-zero buffer indicates an EOF.
        """
        raise NotImplementedError

    @abstractmethod
    def send(self, data: bytes | bytearray | memoryview) -> int:
        """
        Send the `data` bytes to the remote peer.

        The data may be partially sent.

        Parameters:
            data: the bytes to send.

        Raises:
            TimeoutError: Operation timed out.

        Returns:
            the number of bytes sent.
        """
        raise NotImplementedError

    @abstractmethod
    def settimeout(self, timeout: float | None) -> None:
        """
        Sets the time limit of every subsequent :meth:`recv_into` and :meth:`send` call.

        Parameters:
            timeout: a delay in seconds, or :data:`None` to block indefinitely.
        """
        raise NotImplementedError

    @abstractmethod
    def fileno(self) -> int:
        """
        Returns:
            the underlying file descriptor, or ``-1`` if the channel is closed.
        """
        raise NotImplementedError

    @property
    @abstractmethod
    def family(self) -> int:
        """The address family of the underlying socket."""
        raise NotImplementedError

    @abstractmethod
    def getsockname(self) -> Any:
        """
        Returns:
            the local address of the underlying socket.
        """
        raise NotImplementedError

    @abstractmethod
    def getpeername(self) -> Any:
        """
        Returns:
            the remote address of the underlying socket.
        """
        raise NotImplementedError
