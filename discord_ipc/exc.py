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
Exceptions raised from within the library.

.. currentmodule:: discord_ipc.exc
"""
from typing import List, Optional, Tuple

TROUBLESHOOTING = """
Troubleshooting Steps:
1. Make sure the Discord desktop app is running and logged in
2. Enable Rich Presence in Discord Settings:
   - Go to Settings > Activity Privacy
   - Enable "Display current activity as a status message"
3. Try restarting Discord completely
4. Make sure your Discord client is up to date
5. If using Discord Web, try the desktop app instead

For more help, visit: https://support.discord.com/
""".strip()


class IPCError(Exception):
    """
    The base class for all discord-ipc exceptions.
    """


class ConnectionFailure(IPCError, ConnectionError):
    """
    Raised when none of the candidate IPC addresses accepted a connection.
    """

    def __init__(self, errors: List[Tuple[str, BaseException]]):
        #: A list of (path, exception) pairs, one per candidate that was tried.
        self.errors = errors

        #: Human-readable remediation steps. This is informational only.
        self.troubleshooting = TROUBLESHOOTING

        if errors:
            last = errors[-1][1]
            message = "Could not connect to Discord: {}".format(last)
        else:
            message = "Could not connect to Discord: no IPC paths to try"

        super().__init__(message)

    def __str__(self) -> str:
        return "{}\n\n{}".format(self.args[0], self.troubleshooting)


class NotConnected(IPCError, ConnectionError):
    """
    Raised when sending while disconnected, or when a connection is lost with requests still
    waiting on a response.
    """

    def __init__(self, message: str = "Not connected to Discord"):
        super().__init__(message)


class CommandTimeout(IPCError, TimeoutError):
    """
    Raised when a command does not receive a response in time.
    """

    def __init__(self, cmd: str, timeout: float):
        #: The command that timed out.
        self.cmd = cmd
        #: The timeout that elapsed, in seconds.
        self.timeout = timeout

        super().__init__("Command {} timed out after {}s".format(cmd, timeout))


class RemoteError(IPCError):
    """
    Raised when Discord explicitly reports an error.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        #: The error message sent by Discord.
        self.message = message
        #: The error code sent by Discord, if any.
        self.code = code

        super().__init__(message)

    def __str__(self) -> str:
        if self.code is None:
            return self.message

        return "{} ({})".format(self.message, self.code)


class InvalidClientId(RemoteError):
    """
    Raised when Discord does not recognise the application ID used to authorize.
    """


class ProtocolDecodeError(IPCError, ValueError):
    """
    Raised when a frame payload could not be decoded.
    """

    def __init__(self, message: str, payload: bytes = b""):
        #: The raw payload that failed to decode.
        self.payload = payload

        super().__init__(message)


class ActivityError(IPCError, ValueError):
    """
    Raised when an activity fails validation.
    """
