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
"""Outbound TCP connections made simple

netdial resolves a host, tries each address it resolves to under a deadline
and hands back a connection, optionally secured with TLS.
"""

from __future__ import annotations

__all__ = [
    "ConnectRequest",
    "Connection",
    "FamilyPreference",
    "connect",
    "connect_request",
    "get_interface_ipv4_address",
    "lookup_interface_address",
]

__author__ = "FrankySnow9"
__contact__ = "clairicia.rcj.francis@gmail.com"
__copyright__ = "Copyright (c) 2021-2025, Francis Clairicia-Rose-Claire-Josephine"
__credits__ = ["FrankySnow9"]
__deprecated__ = False
__email__ = "clairicia.rcj.francis@gmail.com"
__license__ = "Apache-2.0"
__maintainer__ = "FrankySnow9"
__status__ = "Development"
__version__ = "1.0.0"


############ Package initialization ############
from .connection import ConnectRequest, Connection, connect, connect_request
from .interface import get_interface_ipv4_address, lookup_interface_address
from .lowlevel.resolver import FamilyPreference
