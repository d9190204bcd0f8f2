"""Small CoAP client helpers for talking to a running station."""

from __future__ import annotations

from typing import AsyncIterator, Optional

from aiocoap import GET, Context, Message


async def fetch_reading(uri: str, accept: Optional[int] = None) -> Message:
    """Plain GET, one response."""
    protocol = await Context.create_client_context()
    try:
        request = Message(code=GET, uri=uri)
        if accept is not None:
            request.opt.accept = accept
        return await protocol.request(request).response
    finally:
        await protocol.shutdown()


async def observe_readings(uri: str) -> AsyncIterator[Message]:
    """Yield the initial response and every notification until the server ends the observation."""
    protocol = await Context.create_client_context()
    request = Message(code=GET, uri=uri, observe=0)  # Observe = 0 for subscription
    try:
        requester = protocol.request(request)
        first = await requester.response
        yield first
        if not first.code.is_successful():
            return
        async for notification in requester.observation:
            yield notification
    finally:
        await protocol.shutdown()
