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
"""netdial's constants module."""

from __future__ import annotations

__all__ = [
    "CLOSED_SOCKET_ERRNOS",
    "CONNECT_IN_PROGRESS_ERRNOS",
    "DEFAULT_STREAM_BUFSIZE",
    "IFNAMSIZ",
    "SIOCGIFADDR_REQUESTS",
    "SSL_HANDSHAKE_TIMEOUT",
    "SSL_SHUTDOWN_TIMEOUT",
]

import errno as _errno
from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

# Buffer size for a recv(2) operation
DEFAULT_STREAM_BUFSIZE: Final[int] = 16 * 1024  # 16KiB

# Errors that socket operations can return if the socket is closed
CLOSED_SOCKET_ERRNOS: Final[frozenset[int]] = frozenset(
    {
        # Unix
        _errno.EBADF,
        # Windows
        _errno.ENOTSOCK,
    }
)

# Errors that a non-blocking connect(2) returns while the handshake is still running
CONNECT_IN_PROGRESS_ERRNOS: Final[frozenset[int]] = frozenset(
    {
        errno
        for name in (
            "EINPROGRESS",
            "EWOULDBLOCK",
            "EAGAIN",
            "EINTR",
            # Windows
            "WSAEWOULDBLOCK",
        )
        if (errno := getattr(_errno, name, None)) is not None
    }
)

# Number of seconds to wait for SSL handshake to complete
# The default timeout matches that of Nginx.
SSL_HANDSHAKE_TIMEOUT: Final[float] = 60.0

# Number of seconds to wait for SSL shutdown to complete
# The default timeout mimics lingering_time
SSL_SHUTDOWN_TIMEOUT: Final[float] = 30.0

# Size of the ifr_name field of struct ifreq, trailing NUL included
IFNAMSIZ: Final[int] = 16

# ioctl(2) request number of SIOCGIFADDR, per platform prefix
SIOCGIFADDR_REQUESTS: Final[Mapping[str, int]] = MappingProxyType(
    {
        "linux": 0x8915,
        "darwin": 0xC0206921,
        "freebsd": 0xC0206921,
        "openbsd": 0xC0206921,
        "netbsd": 0xC0206921,
    }
)
