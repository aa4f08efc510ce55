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
Wrappers for Rich Presence activities.

.. currentmodule:: discord_ipc.activity
"""
import copy
import datetime
import enum
from typing import List, Mapping, Optional, Union

from discord_ipc.exc import ActivityError

#: The maximum number of buttons on an activity.
MAX_BUTTONS = 2

ASSET_KEYS = ('large_image', 'large_text', 'small_image', 'small_text')


class ActivityType(enum.IntEnum):
    """
    Represents an activity's type.
    """
    #: Shows the ``Playing`` text.
    PLAYING = 0

    #: Shows the ``Streaming`` text.
    STREAMING = 1

    #: Shows the ``Listening to`` text.
    LISTENING = 2

    #: Shows the ``Watching`` text.
    WATCHING = 3

    #: A custom status.
    CUSTOM = 4

    #: Shows the ``Competing in`` text.
    COMPETING = 5


class ButtonStyle(enum.IntEnum):
    """
    Represents a button's style.
    """
    PRIMARY = 1
    SECONDARY = 2
    SUCCESS = 3
    DANGER = 4
    LINK = 5


def _to_timestamp(value: Union[int, float, datetime.datetime]) -> int:
    if isinstance(value, datetime.datetime):
        return int(value.timestamp())

    return value


def process_activity(activity: Mapping, client_id: str = None) -> dict:
    """
    Validates an activity, and converts it into the form Discord expects.

    :param activity: The activity fields.
    :param client_id: The application ID to use if the activity doesn't specify one.
    :return: A new dict; the passed activity is left untouched.
    """
    if isinstance(activity, Activity):
        activity = activity.to_dict()

    processed = copy.deepcopy(dict(activity))

    if not processed.get("application_id") and client_id is not None:
        processed["application_id"] = client_id

    timestamps = processed.get("timestamps")
    if timestamps:
        for key in ("start", "end"):
            if timestamps.get(key):
                timestamps[key] = _to_timestamp(timestamps[key])

    buttons = processed.get("buttons")
    if buttons and len(buttons) > MAX_BUTTONS:
        raise ActivityError("Maximum {} buttons allowed".format(MAX_BUTTONS))

    assets = processed.get("assets")
    if assets:
        for key, value in assets.items():
            if value and not isinstance(value, str):
                raise ActivityError("Asset {} must be a string".format(key))

    return processed


def _make_property(field: str, doc: str = None, max_size: int = None) -> property:
    def _getter(self):
        return self._fields.get(field)

    def _setter(self, value: str):
        if max_size is not None and value is not None and len(value) > max_size:
            raise ActivityError("Field '{}' cannot be longer than {} characters"
                                .format(field, max_size))

        self._fields[field] = value

    prop = property(_getter, _setter, doc=doc)
    return prop


class Activity(object):
    """
    Represents a Rich Presence activity. This can be passed to :meth:`.IPCClient.set_activity`.
    """

    def __init__(self, **fields):
        """
        :param fields: The activity fields.
        """
        self._fields = {"type": ActivityType.PLAYING}
        for key, value in fields.items():
            if isinstance(getattr(type(self), key, None), property):
                setattr(self, key, value)
            else:
                self._fields[key] = value

    def __repr__(self) -> str:
        return "<Activity name='{}' type={!r} state='{}'>".format(self.name, self.type, self.state)

    name = _make_property("name", "The name of this activity.")
    state = _make_property("state", "The state for this activity.", 128)
    details = _make_property("details", "The details for this activity.", 128)
    url = _make_property("url", "The stream URL for this activity.")

    @property
    def type(self) -> ActivityType:
        """
        The :class:`.ActivityType` of this activity.
        """
        return self._fields["type"]

    @type.setter
    def type(self, value):
        try:
            self._fields["type"] = ActivityType(value)
        except ValueError:
            self._fields["type"] = value

    @property
    def assets(self) -> dict:
        """
        The assets for this activity. A dict of
        (large_image, large_text, small_image, small_text).
        """
        return self._fields.get("assets", {})

    @assets.setter
    def assets(self, value: dict):
        for key in value.keys():
            if key not in ASSET_KEYS:
                raise ActivityError("Bad asset key: {}".format(key))

        self._fields["assets"] = value

    @property
    def party_id(self) -> str:
        """
        The party ID for this activity.
        """
        return self._fields.get("party", {}).get("id")

    @party_id.setter
    def party_id(self, value):
        self._fields.setdefault("party", {})["id"] = value

    @property
    def party_size(self) -> List[int]:
        """
        The size of the party for this activity. An array of [size, max].
        """
        return self._fields.get("party", {}).get("size")

    @party_size.setter
    def party_size(self, size: List[int]):
        self._fields.setdefault("party", {})["size"] = size

    @property
    def buttons(self) -> List[dict]:
        """
        The buttons on this activity.
        """
        return self._fields.get("buttons", [])

    @buttons.setter
    def buttons(self, value: List[dict]):
        if len(value) > MAX_BUTTONS:
            raise ActivityError("Maximum {} buttons allowed".format(MAX_BUTTONS))

        self._fields["buttons"] = list(value)

    def to_dict(self) -> dict:
        """
        :return: The dict representation of this activity.
        """
        return copy.deepcopy(self._fields)


class ActivityBuilder(object):
    """
    Builds up an activity one field at a time.

    .. code-block:: python3

        activity = (ActivityBuilder()
                    .set_name("My Game")
                    .set_details("In a match")
                    .add_button("Website", "https://example.com")
                    .build())

    """

    def __init__(self):
        self.activity = {"type": ActivityType.PLAYING}

    def set_name(self, name: str) -> 'ActivityBuilder':
        self.activity["name"] = name
        return self

    def set_type(self, type_: ActivityType) -> 'ActivityBuilder':
        self.activity["type"] = type_
        return self

    def set_details(self, details: str) -> 'ActivityBuilder':
        self.activity["details"] = details
        return self

    def set_state(self, state: str) -> 'ActivityBuilder':
        self.activity["state"] = state
        return self

    def set_timestamps(self, start=None, end=None) -> 'ActivityBuilder':
        self.activity["timestamps"] = {}
        if start:
            self.activity["timestamps"]["start"] = start
        if end:
            self.activity["timestamps"]["end"] = end
        return self

    def set_assets(self, large_image: str = None, large_text: str = None,
                   small_image: str = None, small_text: str = None) -> 'ActivityBuilder':
        values = (large_image, large_text, small_image, small_text)
        self.activity["assets"] = {key: value for key, value in zip(ASSET_KEYS, values) if value}
        return self

    def set_party(self, id_: str, size: Optional[int] = None,
                  max_: Optional[int] = None) -> 'ActivityBuilder':
        self.activity["party"] = {"id": id_}
        if size is not None and max_ is not None:
            self.activity["party"]["size"] = [size, max_]
        return self

    def add_button(self, label: str, url: str) -> 'ActivityBuilder':
        """
        Adds a link button. At most two buttons can be added.
        """
        buttons = self.activity.setdefault("buttons", [])
        if len(buttons) >= MAX_BUTTONS:
            raise ActivityError("Maximum {} buttons allowed".format(MAX_BUTTONS))

        buttons.append({"label": label, "url": url})
        return self

    def set_streaming_url(self, url: str) -> 'ActivityBuilder':
        """
        Sets the stream URL, which also switches the type to streaming.
        """
        self.activity["url"] = url
        self.activity["type"] = ActivityType.STREAMING
        return self

    def build(self) -> dict:
        return copy.deepcopy(self.activity)
