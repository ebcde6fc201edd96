"""
Notification watch loop with reconnect.

Products close the notification stream on their own every so often with
no reason given.  The watch loop treats that end-of-stream event as a
signal to reconnect to the same product, so ``beoutil watch`` keeps going
until it is interrupted.  A stream that gave up (StreamAborted) ends the
watch with that error; any other error is logged and the loop keeps
reading the same stream.

Usage:
    async def opener():
        return await client.open_notification_stream(cancel=cancel)

    await watch_notifications(opener, lambda n: print(format_notification(n)))
"""

import asyncio
import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Awaitable, Callable

from .errors import NotificationDecodeError, StreamAborted
from .models import Notification, UnknownData, decode_notification
from .notify import NotificationStream

logger = logging.getLogger(__name__)


async def watch_notifications(
    opener: Callable[[], Awaitable[NotificationStream]],
    on_notification: Callable[[Notification], None],
    *,
    reconnect_delay: float = 0.0,
) -> None:
    """Feed decoded notifications to *on_notification*, reconnecting on end-of-stream.

    Returns when a stream closes without an end-of-stream event (cancelled).
    Raises StreamAborted if the stream gave up on decode errors; errors from
    *opener* propagate.
    """
    stream = await opener()
    try:
        while True:
            reconnect = False
            async for event in stream:
                if event.ended:
                    logger.info("Stream closed by product, reconnecting")
                    reconnect = True
                    break
                if isinstance(event.error, StreamAborted):
                    raise event.error
                if event.error is not None:
                    logger.error("Notification stream error: %s", event.error)
                    continue
                try:
                    notification = decode_notification(event.value)
                except NotificationDecodeError as e:
                    logger.warning("Bad notification: %s", e)
                    continue
                on_notification(notification)

            if not reconnect:
                return
            await stream.aclose()
            if reconnect_delay:
                await asyncio.sleep(reconnect_delay)
            stream = await opener()
    finally:
        await stream.aclose()


def format_notification(n: Notification) -> str:
    """Render a notification the way ``beoutil watch`` prints it."""
    if isinstance(n.data, UnknownData) or not is_dataclass(n.data):
        data = json.dumps(n.raw_data)
    else:
        data = json.dumps(asdict(n.data))
    return (f"Type: {n.type}\n"
            f"Kind: {n.kind}\n"
            f"Timestamp: {n.timestamp}\n"
            f"Data: {data}\n")
