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
Events fired by an :class:`.IPCClient`, and the manager that delivers them.

Each event is its own class, and listeners are registered against the class:

.. code-block:: python3

    @client.event(ReadyEvent)
    async def on_ready(event: ReadyEvent):
        print("Connected as", event.data["user"]["username"])

.. currentmodule:: discord_ipc.event
"""
import functools
import inspect
import logging
import typing
from dataclasses import dataclass

import trio
from multidict import MultiDict

logger = logging.getLogger("discord_ipc.events")


class IPCEvent(object):
    """
    The base class for every event.
    """


@dataclass
class ConnectEvent(IPCEvent):
    """
    Fired when the connection to Discord is opened.
    """


@dataclass
class DisconnectEvent(IPCEvent):
    """
    Fired when the connection to Discord is closed, for any reason.
    """


@dataclass
class AuthenticatedEvent(IPCEvent):
    """
    Fired when authentication finishes.
    """

    #: True if authorization failed and the session continued without it.
    degraded: bool = False


@dataclass
class ReadyEvent(IPCEvent):
    """
    Fired when Discord dispatches READY after the handshake.
    """

    data: typing.Any


@dataclass
class ErrorEvent(IPCEvent):
    """
    Fired when an error happens outside of any call that could raise it.
    """

    error: BaseException


@dataclass
class DispatchEvent(IPCEvent):
    """
    Fired for any dispatched event that isn't handled specially, e.g. subscribed events.
    """

    event: str
    data: typing.Any


@dataclass
class MessageEvent(IPCEvent):
    """
    Fired for any inbound message that is neither a response nor a dispatch.
    """

    raw: typing.Any


@dataclass
class ActivitySetEvent(IPCEvent):
    """
    Fired when an activity is successfully set.
    """

    activity: dict


@dataclass
class ActivityClearedEvent(IPCEvent):
    """
    Fired when the activity is cleared.
    """


EventType = typing.Type[IPCEvent]
Listener = typing.Callable[[IPCEvent], typing.Awaitable[None]]


def remove_from_multidict(d: MultiDict, key, item) -> MultiDict:
    """
    Removes an item from a multidict key.
    """
    # works by popping all, removing, then re-adding into
    i = d.popall(key, [])
    if item in i:
        i.remove(item)

    for n in i:
        d.add(key, n)

    return d


class ListenerExit(Exception):
    """
    Raised when a temporary listener is to be exited.
    """


class EventManager(object):
    """
    A manager for events.

    This deals with firing of events and temporary listeners.

    Every listener runs in its own task, so a listener has no guarantee of seeing two events in
    the order they were fired.
    """

    def __init__(self):
        #: The nursery used to spawn listeners.
        self.nursery = None  # type: typing.Optional[trio.Nursery]

        #: A MultiDict of event listeners.
        self.event_listeners = MultiDict()

        #: A MultiDict of temporary listeners.
        self.temporary_listeners = MultiDict()

    @staticmethod
    def _key(event_type: EventType) -> str:
        if not (inspect.isclass(event_type) and issubclass(event_type, IPCEvent)):
            raise TypeError("Event type must be an IPCEvent subclass, not {!r}".format(event_type))

        return event_type.__name__

    def add_listener(self, event_type: EventType, func: Listener):
        """
        Adds a listener for an event type.

        :param event_type: The :class:`.IPCEvent` subclass to listen for.
        :param func: The async function to call with the event.
        """
        key = self._key(event_type)
        if not inspect.iscoroutinefunction(func):
            raise TypeError("Listener must be an async function")

        logger.debug("Registered listener `%s` handling `%s`", func, key)
        self.event_listeners.add(key, func)

    def remove_listener(self, event_type: EventType, func: Listener):
        """
        Removes a listener.
        """
        self.event_listeners = remove_from_multidict(self.event_listeners,
                                                     key=self._key(event_type), item=func)

    def add_temporary_listener(self, event_type: EventType, listener: Listener):
        """
        Adds a new temporary listener. Raise :class:`.ListenerExit` inside it to remove it.
        """
        self.temporary_listeners.add(self._key(event_type), listener)

    # wrapper functions
    async def _safety_wrapper(self, func, event: IPCEvent):
        """
        Ensures a listener's error is caught and doesn't balloon out.
        """
        try:
            await func(event)
        except Exception:
            logger.exception("Unhandled exception in {}!".format(func.__name__))

    async def _listener_wrapper(self, key: str, func, event: IPCEvent):
        """
        Wraps a temporary listener, ensuring ListenerExit is handled properly.
        """
        try:
            await func(event)
        except ListenerExit:
            self.temporary_listeners = remove_from_multidict(self.temporary_listeners, key, func)
        except Exception:
            logger.exception("Unhandled exception in listener {}!".format(func.__name__))
            self.temporary_listeners = remove_from_multidict(self.temporary_listeners, key, func)

    async def wait_for(self, event_type: EventType, predicate=None) -> IPCEvent:
        """
        Waits for the next event of a type.

        :param event_type: The :class:`.IPCEvent` subclass to wait for.
        :param predicate: An optional callable; the wait only finishes once it returns True.
        """
        done = trio.Event()
        result = []
        errored = False

        async def listener(event):
            nonlocal errored
            if done.is_set():
                raise ListenerExit

            if predicate is not None:
                try:
                    res = predicate(event)
                    if inspect.isawaitable(res):
                        res = await res
                except Exception as e:
                    # something bad happened, hand the error to the waiter and exit
                    logger.exception("Exception in wait_for predicate!")
                    errored = True
                    result.append(e)
                    done.set()
                    raise ListenerExit

                if res is not True:
                    return

            result.append(event)
            done.set()
            raise ListenerExit

        self.add_temporary_listener(event_type, listener)
        try:
            await done.wait()
        finally:
            if not done.is_set():
                self.temporary_listeners = remove_from_multidict(
                    self.temporary_listeners, self._key(event_type), listener
                )

        if errored:
            raise result[0]

        return result[0]

    def fire_event(self, event: IPCEvent):
        """
        Fires an event. Every listener is spawned as a new task.

        :param event: The :class:`.IPCEvent` to fire.
        """
        if self.nursery is None:
            logger.debug("Dropping %r, no nursery to run listeners in", event)
            return

        key = type(event).__name__

        for handler in self.event_listeners.getall(key, []):
            coro = functools.partial(self._safety_wrapper, handler, event)
            self.nursery.start_soon(coro, name=handler.__name__)

        for listener in self.temporary_listeners.getall(key, []):
            coro = functools.partial(self._listener_wrapper, key, listener, event)
            self.nursery.start_soon(coro)
