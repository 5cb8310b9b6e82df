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
"""Host name resolution module."""

from __future__ import annotations

__all__ = [
    "CandidateAddress",
    "FamilyPreference",
    "resolve_candidates",
]

import enum
import socket as _socket
from typing import Any, NamedTuple, Self

from ..exceptions import ErrorReason, ReasonKind, ResolutionError
from . import _utils


@enum.unique
class FamilyPreference(enum.IntEnum):
    """Address families allowed for a connection."""

    ANY = _socket.AF_UNSPEC
    """Any family configured on the host."""

    IPV4 = _socket.AF_INET
    """IPv4 addresses only."""

    IPV6 = _socket.AF_INET6
    """IPv6 addresses only."""

    @classmethod
    def from_value(cls, value: FamilyPreference | int | str) -> Self:
        """
        Converts a user option to a :class:`FamilyPreference`.

        Example:
            >>> FamilyPreference.from_value("ipv4")
            <FamilyPreference.IPV4: 2>
            >>> FamilyPreference.from_value(socket.AF_INET6)
            <FamilyPreference.IPV6: 10>

        Parameters:
            value: an enum member, a ``socket.AF_*`` value, or one of ``"any"``, ``"ipv4"``, ``"ipv6"``.

        Raises:
            ValueError: Unknown family.
            TypeError: Invalid `value` type.
        """
        match value:
            case cls():
                return value
            case str():
                try:
                    return cls[value.strip().upper()]
                except KeyError:
                    raise ValueError(f"Unknown address family {value!r}") from None
            case bool():
                raise TypeError(f"Invalid address family {value!r}")
            case int():
                return cls(value)
            case _:
                raise TypeError(f"Invalid address family {value!r}")


class CandidateAddress(NamedTuple):
    """One resolved endpoint eligible for a connection attempt."""

    family: int
    type: int
    proto: int
    address: tuple[Any, ...]

    def __str__(self) -> str:
        host, port = self.address[:2]
        if self.family == _socket.AF_INET6:
            return f"[{host}]:{port:d}"
        return f"{host}:{port:d}"


def resolve_candidates(
    host: str,
    port: int,
    family: FamilyPreference | int | str = FamilyPreference.ANY,
) -> list[CandidateAddress]:
    """
    Resolves `host` into an ordered list of stream endpoints.

    Only families with at least one address configured on the host are returned (``AI_ADDRCONFIG``).

    Parameters:
        host: A host name or a numeric address.
        port: The remote port.
        family: Restrict the resolution to a given address family.

    Raises:
        ResolutionError: The resolution failed or returned nothing.

    Returns:
        the candidates, in the order given by the system resolver.
    """
    port = _utils.validate_port(port)
    family = FamilyPreference.from_value(family)

    try:
        infos = _socket.getaddrinfo(host, port, family, _socket.SOCK_STREAM, 0, _socket.AI_ADDRCONFIG)
    except _socket.gaierror as exc:
        raise ResolutionError(host, port, ErrorReason.from_gai_error(exc)) from exc
    except UnicodeError as exc:
        # IDNA encoding failure of the host name
        raise ResolutionError(host, port, ErrorReason(ReasonKind.RESOLVER, None, str(exc))) from exc

    candidates = [CandidateAddress(af, socktype, proto, sockaddr) for af, socktype, proto, _, sockaddr in infos]
    if not candidates:
        no_data = getattr(_socket, "EAI_NODATA", _socket.EAI_NONAME)
        raise ResolutionError(host, port, ErrorReason(ReasonKind.RESOLVER, no_data, "No address associated with hostname"))
    return candidates
