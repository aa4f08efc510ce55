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
The client for an IPC connection.

.. currentmodule:: discord_ipc.client
"""
import enum
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional

import trio

from discord_ipc.activity import process_activity
from discord_ipc.correlator import RequestCorrelator
from discord_ipc.event import (ActivityClearedEvent, ActivitySetEvent, AuthenticatedEvent,
                               ConnectEvent, DisconnectEvent, DispatchEvent, ErrorEvent,
                               EventManager, IPCEvent, MessageEvent, ReadyEvent)
from discord_ipc.exc import (CommandTimeout, InvalidClientId, NotConnected, ProtocolDecodeError,
                             RemoteError)
from discord_ipc.outbound import OutboundQueue
from discord_ipc.packet import FrameDecoder, IPCOpcode, IPCPacket, encode
from discord_ipc.transport import IPCTransport

#: The longest delay between two reconnect attempts, in seconds.
MAX_RECONNECT_DELAY = 30.0

#: Remote error messages that mean the client ID itself is wrong.
FATAL_AUTHORIZE_ERRORS = ("Invalid Client ID", "Unknown Application")


class SessionPhase(enum.Enum):
    """
    The phases a session moves through.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    HANDSHAKING = "handshaking"
    AUTHENTICATING = "authenticating"
    READY = "ready"


@dataclass
class SessionState:
    """
    Wraps the mutable state of the current session.
    """

    #: The application ID used for the handshake.
    client_id: Optional[str]

    #: If the transport is currently connected.
    connected: bool = False

    #: If authentication has completed, possibly in degraded mode.
    authenticated: bool = False

    #: If token-less authorization failed and the session carried on without it.
    degraded: bool = False

    #: The number of reconnect attempts since the last successful connection.
    reconnect_attempts: int = 0

    #: The activity last set, resubmitted after a reconnect.
    current_activity: Optional[dict] = None

    #: The current :class:`.SessionPhase`.
    phase: SessionPhase = SessionPhase.DISCONNECTED

    #: The wall-clock time of the last liveness tick.
    last_heartbeat: Optional[float] = None


@dataclass(frozen=True)
class ClientStatus:
    """
    A snapshot of a client's session state.
    """

    connected: bool
    authenticated: bool
    client_id: Optional[str]
    current_activity: Optional[dict]
    reconnect_attempts: int
    degraded: bool
    phase: SessionPhase

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "authenticated": self.authenticated,
            "client_id": self.client_id,
            "current_activity": self.current_activity,
            "reconnect_attempts": self.reconnect_attempts,
            "degraded": self.degraded,
            "phase": self.phase.value,
        }


def compute_backoff(attempt: int, base_delay: float, cap: float = MAX_RECONNECT_DELAY) -> float:
    """
    Computes the delay before a reconnect attempt.

    :param attempt: The attempt number, starting from 1.
    :param base_delay: The delay before the first attempt, in seconds.
    :param cap: The maximum delay.
    """
    return min(base_delay * 2 ** (attempt - 1), cap)


class IPCClient(object):
    """
    Represents an IPC (interprocess communication) client. This connects to the Discord client on
    the IPC socket.

    The client needs a nursery to run its background tasks in, so it is normally opened with
    :func:`.open_ipc_client`:

    .. code-block:: python3

        async with open_ipc_client("323578534763298816") as ipc:
            await ipc.connect()
            await ipc.handshake()
            await ipc.authenticate()
            await ipc.set_activity({"name": "My Game", "details": "In the menus"})

    """
    VERSION = 1

    #: The timeout for token-less authorization, in seconds.
    AUTHORIZE_TIMEOUT = 15.0

    def __init__(self, client_id: str = None, *,
                 debug: bool = False,
                 auto_reconnect: bool = True,
                 reconnect_delay: float = 5.0,
                 max_reconnect_attempts: int = 10,
                 connect_timeout: float = 2.0,
                 heartbeat_interval: float = 30.0,
                 command_timeout: float = 10.0,
                 logger: logging.Logger = None,
                 transport: IPCTransport = None):
        """
        :param client_id: The application ID to connect with.
        :param debug: If every payload sent and received should be logged.
        :param auto_reconnect: If the client should reconnect when the connection drops.
        :param reconnect_delay: The base delay between reconnect attempts, in seconds.
        :param max_reconnect_attempts: The number of reconnect attempts before giving up.
        :param connect_timeout: The time allowed to connect to each IPC path, in seconds.
        :param heartbeat_interval: How often the liveness timer ticks, in seconds.
        :param command_timeout: The default time to wait for a command response, in seconds.
        :param logger: The :class:`logging.Logger` to write to.
        :param transport: The :class:`.IPCTransport` to use.
        """
        self.client_id = str(client_id) if client_id is not None else None

        self.debug = debug
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.heartbeat_interval = heartbeat_interval
        self.command_timeout = command_timeout

        self.logger = logger or logging.getLogger("discord_ipc.client")

        #: The :class:`.IPCTransport` used for the connection.
        self.transport = transport or IPCTransport(connect_timeout=connect_timeout)

        #: The current :class:`.SessionState`.
        self.state = SessionState(client_id=self.client_id)

        #: The :class:`.EventManager` used to deliver events.
        self.events = EventManager()

        self._nursery = None  # type: Optional[trio.Nursery]
        self._decoder = FrameDecoder()
        self._correlator = RequestCorrelator(self.send)
        self._queue = OutboundQueue()

        self._reader_scope = None  # type: Optional[trio.CancelScope]
        self._heartbeat_scope = None  # type: Optional[trio.CancelScope]
        self._reconnect_scope = None  # type: Optional[trio.CancelScope]

        # used to restore the session after a reconnect
        self._reauthenticate = False
        self._auth_token = None  # type: Optional[str]
        self._closed = False

        # one connection attempt at a time; disconnect() bumps the generation so an attempt
        # that was in flight knows to back out
        self._connect_lock = trio.Lock()
        self._generation = 0

        self.logger.debug("IPCClient initialized")

    def __repr__(self) -> str:
        return "<IPCClient client_id={} phase={}>".format(self.client_id, self.state.phase.name)

    @property
    def nursery(self) -> trio.Nursery:
        if self._nursery is None:
            raise RuntimeError("Client is not running; use open_ipc_client() or start()")

        return self._nursery

    @property
    def queued(self) -> int:
        """
        :return: The number of messages waiting to be sent.
        """
        return len(self._queue)

    @property
    def pending(self) -> int:
        """
        :return: The number of commands waiting on a response.
        """
        return len(self._correlator)

    def start(self, nursery: trio.Nursery):
        """
        Binds this client to a nursery, which its background tasks and listeners are run in.
        """
        self._nursery = nursery
        self.events.nursery = nursery

    def event(self, event_type):
        """
        A convenience decorator to register a listener.

        .. code-block:: python3

            @ipc.event(DispatchEvent)
            async def on_dispatch(event: DispatchEvent):
                print(event.event, event.data)

        :param event_type: The :class:`.IPCEvent` subclass to listen for.
        """

        def _inner(func):
            self.events.add_listener(event_type, func)
            return func

        return _inner

    def wait_for(self, event_type, predicate=None):
        """
        Shortcut for :meth:`.EventManager.wait_for`.
        """
        return self.events.wait_for(event_type, predicate)

    def _fire(self, event: IPCEvent):
        self.events.fire_event(event)

    def get_status(self) -> ClientStatus:
        """
        :return: A :class:`.ClientStatus` snapshot of the session.
        """
        return ClientStatus(
            connected=self.state.connected,
            authenticated=self.state.authenticated,
            client_id=self.client_id,
            current_activity=self.state.current_activity,
            reconnect_attempts=self.state.reconnect_attempts,
            degraded=self.state.degraded,
            phase=self.state.phase,
        )

    # Connection
    async def connect(self):
        """
        Connects to the first IPC socket that accepts a connection.

        If another connection attempt is already running, this waits for it to finish instead of
        opening a second connection.

        :raises ConnectionFailure: If Discord could not be reached on any IPC path.
        :raises NotConnected: If :meth:`disconnect` was called before the connection opened.
        """
        nursery = self.nursery
        generation = self._generation

        async with self._connect_lock:
            if self.state.connected:
                self.logger.debug("Already connected")
                return

            self.state.phase = SessionPhase.CONNECTING

            try:
                path = await self.transport.connect()
            except BaseException:
                self.state.phase = SessionPhase.DISCONNECTED
                raise

            if generation != self._generation:
                self.logger.info("Disconnected whilst connecting, closing the new connection")
                self.state.phase = SessionPhase.DISCONNECTED
                await self.transport.close()
                raise NotConnected("Disconnected whilst connecting")

            self._open_session(nursery, path)

    def _open_session(self, nursery: trio.Nursery, path: str):
        self.logger.info("Connected to Discord via %s", path)
        self.state.connected = True
        self.state.phase = SessionPhase.CONNECTED
        self.state.reconnect_attempts = 0
        self._closed = False
        self._decoder.clear()

        self._reader_scope = trio.CancelScope()
        nursery.start_soon(self._read_loop, self._reader_scope)

        self._fire(ConnectEvent())

    async def handshake(self):
        """
        Sends the handshake. This doesn't wait for Discord to reply; Discord dispatches READY,
        which fires a :class:`.ReadyEvent`.
        """
        if not self.client_id:
            raise ValueError("Client ID is required")

        await self.send(IPCOpcode.HANDSHAKE, {
            "v": IPCClient.VERSION,
            "client_id": self.client_id
        })

        if self.state.connected:
            self.state.phase = SessionPhase.HANDSHAKING

        self._start_heartbeat()

    async def authenticate(self, access_token: str = None):
        """
        Authenticates the session, then flushes any queued messages.

        Without a token, this sends AUTHORIZE on a best-effort basis. If Discord rejects it or
        doesn't answer, the session carries on in a degraded mode (``degraded`` is set on the
        status) instead of failing, so basic presence still works.

        :param access_token: An OAuth2 access token to AUTHENTICATE with.
        :raises InvalidClientId: If Discord doesn't recognise the client ID.
        """
        previous_phase = self.state.phase
        if self.state.connected:
            self.state.phase = SessionPhase.AUTHENTICATING

        degraded = False
        try:
            if access_token is None:
                degraded = not await self._authorize()
            else:
                await self.send_command("AUTHENTICATE", {"access_token": access_token})
        except BaseException:
            if self.state.phase == SessionPhase.AUTHENTICATING:
                self.state.phase = previous_phase
            raise

        self.state.authenticated = True
        self.state.degraded = degraded
        if self.state.connected:
            self.state.phase = SessionPhase.READY

        self._reauthenticate = True
        self._auth_token = access_token

        self._fire(AuthenticatedEvent(degraded=degraded))
        await self._flush_queue()

    async def _authorize(self) -> bool:
        """
        Sends a token-less AUTHORIZE.

        :return: True if authorization succeeded, False if the session is degraded.
        """
        try:
            await self.send_command("AUTHORIZE", {
                "client_id": self.client_id,
                "scopes": ["rpc"]
            }, timeout=self.AUTHORIZE_TIMEOUT)
        except RemoteError as e:
            self.logger.warning("Authorization failed: %s", e)
            if any(message in e.message for message in FATAL_AUTHORIZE_ERRORS):
                raise InvalidClientId(
                    "Invalid Client ID: {}. Please check your Discord Application ID."
                    .format(self.client_id), e.code
                ) from e
        except CommandTimeout as e:
            self.logger.warning("Authorization failed: %s", e)
        else:
            self.logger.info("Authorization successful")
            return True

        self.logger.warning("Continuing without full authentication - some features may be "
                            "limited")
        return False

    async def disconnect(self):
        """
        Disconnects from Discord, and disables reconnecting.

        Any commands still waiting on a response fail with :class:`.NotConnected`, and any queued
        messages are dropped. :class:`.DisconnectEvent` is only fired if a connection was still
        open; a connection that already dropped has fired it.
        """
        self.auto_reconnect = False
        self._generation += 1
        if self._closed:
            return

        self._closed = True
        self._cancel_timers()
        if self._reader_scope is not None:
            self._reader_scope.cancel()
            self._reader_scope = None

        was_connected = self.state.connected
        self._reset_session()
        self._reauthenticate = False
        self._auth_token = None
        self._correlator.reject_all(NotConnected("Disconnected from Discord"))
        self._queue.clear()

        await self.transport.close()

        if was_connected:
            self._fire(DisconnectEvent())
        self.logger.info("Disconnected from Discord")

    def _reset_session(self):
        self.state.connected = False
        self.state.authenticated = False
        self.state.degraded = False
        self.state.phase = SessionPhase.DISCONNECTED
        self._decoder.clear()

    def _cancel_timers(self):
        for scope in (self._heartbeat_scope, self._reconnect_scope):
            if scope is not None:
                scope.cancel()

        self._heartbeat_scope = None
        self._reconnect_scope = None

    # Liveness
    def _start_heartbeat(self):
        if self._heartbeat_scope is not None:
            self._heartbeat_scope.cancel()

        self._heartbeat_scope = trio.CancelScope()
        self.nursery.start_soon(self._heartbeat_loop, self._heartbeat_scope)

    async def _heartbeat_loop(self, scope: trio.CancelScope):
        """
        Ticks the liveness timer. Discord doesn't need heartbeats over IPC, so this never sends
        anything.
        """
        with scope:
            while True:
                await trio.sleep(self.heartbeat_interval)
                if self.state.connected:
                    self.state.last_heartbeat = time.time()

    # Reconnection
    def _schedule_reconnect(self):
        self.state.reconnect_attempts += 1
        delay = compute_backoff(self.state.reconnect_attempts, self.reconnect_delay)
        self.logger.info("Scheduling reconnect attempt %d in %.1fs",
                         self.state.reconnect_attempts, delay)

        if self._reconnect_scope is not None:
            self._reconnect_scope.cancel()

        self._reconnect_scope = trio.CancelScope()
        self.nursery.start_soon(self._reconnect, delay, self._reconnect_scope)

    async def _reconnect(self, delay: float, scope: trio.CancelScope):
        """
        Waits out the backoff, then restores the session.

        A failure here is only reported; the next dropped connection schedules the next attempt.
        """
        with scope:
            await trio.sleep(delay)
            try:
                await self.connect()
                await self.handshake()
                if self._reauthenticate:
                    await self.authenticate(self._auth_token)
                else:
                    await self._flush_queue()

                if self.state.current_activity is not None:
                    await self.set_activity(self.state.current_activity)
            except Exception as e:
                self.logger.error("Reconnect attempt failed: %s", e)
                self._fire(ErrorEvent(e))

        if self._reconnect_scope is scope:
            self._reconnect_scope = None

    async def _handle_close(self):
        if self._closed:
            return

        self.logger.info("Socket closed")
        if self._heartbeat_scope is not None:
            self._heartbeat_scope.cancel()
            self._heartbeat_scope = None

        self._reader_scope = None
        self._reset_session()
        self._correlator.reject_all(NotConnected("Connection to Discord was lost"))
        self._fire(DisconnectEvent())

        if self.auto_reconnect:
            if self.state.reconnect_attempts < self.max_reconnect_attempts:
                self._schedule_reconnect()
            else:
                self.logger.error("Giving up after %d reconnect attempts",
                                  self.state.reconnect_attempts)

        await self.transport.close()

    # Reader methods
    async def _read_loop(self, scope: trio.CancelScope):
        """
        Reads frames off of the connection until it closes.
        """
        with scope:
            try:
                while True:
                    chunk = await self.transport.receive_some()
                    if not chunk:
                        break

                    for frame in self._decoder.feed(chunk):
                        try:
                            packet = IPCPacket.from_frame(frame)
                        except ProtocolDecodeError as e:
                            self.logger.error("Failed to parse message: %s", e)
                            self._fire(ErrorEvent(e))
                            continue

                        await self._handle_packet(packet)
            except (trio.BrokenResourceError, trio.ClosedResourceError, NotConnected,
                    OSError) as e:
                self.logger.error("Socket error: %s", e)
                self._fire(ErrorEvent(e))

        if scope.cancelled_caught:
            return

        await self._handle_close()

    async def _handle_packet(self, packet: IPCPacket):
        if self.debug:
            self.logger.debug("Received: %s", packet.payload)

        if packet.opcode == IPCOpcode.PING:
            await self._write(IPCOpcode.PONG, packet.payload)
            return

        if packet.opcode == IPCOpcode.CLOSE:
            data = packet.payload if isinstance(packet.payload, dict) else {}
            error = RemoteError(data.get("message", "Connection closed by Discord"),
                                data.get("code"))
            self.logger.warning("Discord is closing the connection: %s", error)
            self._fire(ErrorEvent(error))
            return

        # responses to pending requests
        if self._correlator.resolve(packet):
            return

        if packet.cmd == "DISPATCH":
            self._handle_dispatch(packet.event, packet.data)
        else:
            self._fire(MessageEvent(packet.payload))

    def _handle_dispatch(self, event: str, data: Any):
        if event == "READY":
            self._fire(ReadyEvent(data))
        elif event == "ERROR":
            if not isinstance(data, dict):
                data = {}
            self._fire(ErrorEvent(RemoteError(data.get("message", "Unknown error"),
                                              data.get("code"))))
        else:
            self._fire(DispatchEvent(event, data))

    # Writer methods
    async def _write(self, opcode: int, data: Any):
        """
        Writes a frame directly to the transport.
        """
        try:
            await self.transport.send(encode(opcode, data))
        except (trio.BrokenResourceError, trio.ClosedResourceError) as e:
            raise NotConnected("Connection to Discord was lost") from e

        if self.debug:
            self.logger.debug("Sent: %s", data)

    async def _flush_queue(self):
        if not self.state.connected:
            return

        try:
            await self._queue.flush(self._write)
        except NotConnected as e:
            self.logger.warning("Failed to flush queue, %d message(s) left: %s",
                                len(self._queue), e)
            self._fire(ErrorEvent(e))

    async def send(self, opcode: int, data: Any):
        """
        Sends a frame to Discord.

        Whilst disconnected, the frame is queued if reconnecting is enabled, and sent once the
        session is authenticated again.

        :param opcode: The :class:`.IPCOpcode` for the frame.
        :param data: The JSON-serializable data for the frame.
        :raises NotConnected: If disconnected, and reconnecting is disabled.
        """
        if not self.state.connected:
            if self.auto_reconnect:
                self.logger.debug("Not connected, queueing frame with opcode %d", opcode)
                self._queue.push(opcode, data)
                return

            raise NotConnected()

        await self._write(opcode, data)

    async def send_command(self, cmd: str, args: dict = None,
                           timeout: float = None) -> IPCPacket:
        """
        Sends a command and waits for the response.

        :param cmd: The command, e.g. ``GET_GUILDS``.
        :param args: The arguments for the command.
        :param timeout: The time to wait for a response, in seconds.
        :return: The response :class:`.IPCPacket`.
        """
        if timeout is None:
            timeout = self.command_timeout

        return await self._correlator.send_command(cmd, args, timeout)

    # Convenience methods
    async def set_activity(self, activity: Mapping):
        """
        Sets the Rich Presence activity.

        :param activity: The activity, as a dict or :class:`.Activity`.
        """
        processed = process_activity(activity, self.client_id)

        try:
            await self.send_command("SET_ACTIVITY", {
                "pid": os.getpid(),
                "activity": processed
            })
        except Exception as e:
            self.logger.error("Failed to set activity: %s", e)
            raise

        self.state.current_activity = processed
        self._fire(ActivitySetEvent(processed))

    async def clear_activity(self):
        """
        Clears the Rich Presence activity.
        """
        await self.send_command("SET_ACTIVITY", {"pid": os.getpid()})

        self.state.current_activity = None
        self._fire(ActivityClearedEvent())

    async def subscribe(self, event: str, **args) -> Any:
        """
        Subscribes to an event. Matching events are fired as :class:`.DispatchEvent`.
        """
        response = await self.send_command("SUBSCRIBE", {"evt": event, **args})
        return response.data

    async def unsubscribe(self, event: str, **args) -> Any:
        response = await self.send_command("UNSUBSCRIBE", {"evt": event, **args})
        return response.data

    async def get_user(self, user_id: str) -> dict:
        response = await self.send_command("GET_USER", {"user_id": str(user_id)})
        return response.data

    async def get_guilds(self) -> dict:
        response = await self.send_command("GET_GUILDS")
        return response.data

    async def get_channels(self, guild_id: str = None) -> dict:
        args = {"guild_id": str(guild_id)} if guild_id else {}
        response = await self.send_command("GET_CHANNELS", args)
        return response.data


@asynccontextmanager
async def open_ipc_client(client_id: str = None, **kwargs) -> AsyncIterator[IPCClient]:
    """
    Opens a new :class:`.IPCClient` with its own nursery. The client is disconnected on exit.

    :param client_id: The application ID to connect with.
    :param kwargs: Passed to :class:`.IPCClient`.
    """
    async with trio.open_nursery() as nursery:
        client = IPCClient(client_id, **kwargs)
        client.start(nursery)
        try:
            yield client
        finally:
            with trio.CancelScope(shield=True):
                await client.disconnect()

            nursery.cancel_scope.cancel()
