# This file is part of discord-ipc.
#
# discord-ipc is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# discord-ipc is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with discord-ipc.  If not, see <http://www.gnu.org/licenses/>.

"""
IPC helpers, for Rich Presence and local RPC against the Discord desktop client.

.. currentmodule:: discord_ipc

.. autosummary::
    :toctree: discord_ipc

    client
    correlator
    event
    exc
    outbound
    packet
    transport
    activity
"""
from discord_ipc.activity import Activity, ActivityBuilder, ActivityType, ButtonStyle
from discord_ipc.client import ClientStatus, IPCClient, SessionPhase, open_ipc_client
from discord_ipc.event import (ActivityClearedEvent, ActivitySetEvent, AuthenticatedEvent,
                               ConnectEvent, DisconnectEvent, DispatchEvent, ErrorEvent,
                               MessageEvent, ReadyEvent)
from discord_ipc.exc import (ActivityError, CommandTimeout, ConnectionFailure, IPCError,
                             InvalidClientId, NotConnected, ProtocolDecodeError, RemoteError)

__version__ = "0.1.0"
