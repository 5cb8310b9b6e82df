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
"""Local network interface lookup module."""

from __future__ import annotations

__all__ = [
    "get_interface_ipv4_address",
    "lookup_interface_address",
]

import contextlib
import errno as _errno
import logging
import os
import socket as _socket
import struct
import sys

try:
    import fcntl
except ImportError:  # pragma: no cover
    _fcntl_module = None
else:
    _fcntl_module = fcntl
    del fcntl

from .exceptions import ErrorReason, InterfaceLookupError
from .lowlevel import constants

# struct ifreq: ifr_name[IFNAMSIZ] followed by a union whose largest member is 24 bytes long.
_IFREQ_UNION_SIZE = 24

# Offset of sin_addr within struct sockaddr_in
_SIN_ADDR_OFFSET = 4

logger = logging.getLogger(__name__)


def get_interface_ipv4_address(interface: str) -> str:
    """
    Retrieves the IPv4 address currently assigned to a local network interface.

    Example:
        >>> get_interface_ipv4_address("lo")
        '127.0.0.1'

    Parameters:
        interface: The interface name (e.g. ``"eth0"``).

    Raises:
        InterfaceLookupError: Unknown interface, no IPv4 address assigned, invalid name,
                              permission error or unsupported platform.

    Returns:
        the address in dotted-quad notation.
    """
    request = _get_siocgifaddr_request()
    if _fcntl_module is None or request is None:
        raise InterfaceLookupError(interface, ErrorReason.from_errno(_errno.EOPNOTSUPP))

    try:
        name = os.fsencode(interface)
    except (TypeError, UnicodeError):
        raise InterfaceLookupError(str(interface), ErrorReason.from_errno(_errno.EINVAL)) from None
    if not name or b"\0" in name or len(name) >= constants.IFNAMSIZ:
        raise InterfaceLookupError(interface, ErrorReason.from_errno(_errno.EINVAL))

    try:
        sock = _socket.socket(_socket.AF_INET, _socket.SOCK_DGRAM, _socket.IPPROTO_IP)
    except OSError as exc:
        raise InterfaceLookupError(interface, ErrorReason.from_os_error(exc)) from exc

    with contextlib.closing(sock):
        try:
            ifreq: bytes = _fcntl_module.ioctl(sock.fileno(), request, _build_ifreq(name))
        except OSError as exc:
            raise InterfaceLookupError(interface, ErrorReason.from_os_error(exc)) from exc

    offset = constants.IFNAMSIZ + _SIN_ADDR_OFFSET
    return _socket.inet_ntoa(ifreq[offset : offset + 4])


def lookup_interface_address(interface: str) -> tuple[bool, str]:
    """
    Non-raising variant of :func:`get_interface_ipv4_address`.

    Parameters:
        interface: The interface name (e.g. ``"eth0"``).

    Returns:
        a pair ``(True, address)`` on success, ``(False, "")`` otherwise.
    """
    try:
        address = get_interface_ipv4_address(interface)
    except InterfaceLookupError as exc:
        logger.debug("%s", exc)
        return False, ""
    return True, address


def _get_siocgifaddr_request() -> int | None:
    for platform_prefix, request in constants.SIOCGIFADDR_REQUESTS.items():
        if sys.platform.startswith(platform_prefix):
            return request
    return None


def _build_ifreq(name: bytes) -> bytes:
    if sys.platform.startswith("linux"):
        sockaddr = struct.pack("=H", _socket.AF_INET)
    else:
        # BSD sockaddr begins with sa_len
        sockaddr = struct.pack("=BB", 16, _socket.AF_INET)
    return name.ljust(constants.IFNAMSIZ, b"\0") + sockaddr.ljust(_IFREQ_UNION_SIZE, b"\0")
