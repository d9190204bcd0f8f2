"""One-shot announcement of the station to a directory service."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO
from urllib.parse import urlsplit

from aiocoap import POST, Message
from aiocoap import error as coap_error

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_PORT = 5683
DEFAULT_REGISTRY_PATH = "/registry"


def registry_uri(registry: str) -> str:
    """Normalize a registry address to ``coap://host:port/path``."""
    if not registry.startswith("coap://"):
        registry = "coap://" + registry
    parts = urlsplit(registry)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port or DEFAULT_REGISTRY_PORT
    path = parts.path if parts.path not in ("", "/") else DEFAULT_REGISTRY_PATH
    return f"coap://{host}:{port}{path}"


class DirectoryAnnouncer:
    def __init__(self, registry: str, output: TextIO | None = None) -> None:
        self.uri = registry_uri(registry)
        self.output = output

    async def announce(self, context) -> Optional[Message]:
        """POST to the registry and copy its answer to the output; failures are only logged."""
        logger.info("Registering at %s", self.uri, extra={"registry": self.uri})
        request = Message(code=POST, uri=self.uri)
        try:
            response = await context.request(request).response
        except (coap_error.Error, OSError) as exc:
            logger.error("Registration failed: %s", exc, extra={"registry": self.uri})
            return None

        output = self.output or sys.stdout
        output.write(response.payload.decode("utf-8", errors="replace"))
        output.flush()
        logger.info("Registry answered %s", response.code, extra={"registry": self.uri})
        return response
