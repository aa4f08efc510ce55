"""
An example that shows a Rich Presence activity on the local Discord client.
"""

# The client talks to the Discord desktop app over its local IPC socket, so Discord has to be
# running on this machine. No bot token is involved; only your application's client ID.

import logging
import time

import trio

from discord_ipc import (ActivityBuilder, DispatchEvent, DisconnectEvent, ReadyEvent,
                         open_ipc_client)

logging.basicConfig(level=logging.INFO)

CLIENT_ID = "123456789012345678"


async def main():
    # open_ipc_client creates a client and gives it a nursery to run its background tasks in.
    # When the block exits, the client is disconnected.
    async with open_ipc_client(CLIENT_ID, debug=True) as client:
        # Events are registered with the @client.event(EventClass) decorator.
        @client.event(ReadyEvent)
        async def on_ready(event: ReadyEvent):
            print("Connected as {}".format(event.data["user"]["username"]))

        @client.event(DisconnectEvent)
        async def on_disconnect(event: DisconnectEvent):
            print("Lost connection, the client will reconnect on its own.")

        # Any subscribed event arrives as a DispatchEvent.
        @client.event(DispatchEvent)
        async def on_dispatch(event: DispatchEvent):
            print("Got {}: {}".format(event.event, event.data))

        await client.connect()
        await client.handshake()
        # Without an access token, this asks Discord to authorize the application. If that
        # fails, the session carries on in degraded mode; presence still works.
        await client.authenticate()

        activity = (ActivityBuilder()
                    .set_name("discord-ipc")
                    .set_details("Trying out the example")
                    .set_state("Idle")
                    .set_timestamps(start=int(time.time()))
                    .add_button("Source", "https://example.com")
                    .build())
        await client.set_activity(activity)

        # Keep the activity up for a while. Reconnection restores it automatically.
        await trio.sleep(300)
        await client.clear_activity()


trio.run(main)
