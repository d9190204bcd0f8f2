"""Routing, method and content-format checks in front of the station's resources."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from aiocoap import CONTENT, GET, Message
from aiocoap.numbers.codes import Code

from weatherstation.errors import MethodError, NegotiationError, RoutingError, StationError
from weatherstation.observe import ObservableResource, ObservationStream, ObserverHandle
from weatherstation.representation import LINK_FORMAT, RDF_FORMATS

logger = logging.getLogger(__name__)

WELL_KNOWN_CORE = (".well-known", "core")

MEDIA_TYPES: Dict[int, str] = {LINK_FORMAT: "application/link-format"}
MEDIA_TYPES.update({number: fmt.media_type for number, fmt in RDF_FORMATS.items()})

Renderer = Callable[[int], Message]


@dataclass(frozen=True)
class Route:
    """
    One exact path.

    ``formats`` lists the content formats the route can produce, the first
    one being used when the request carries no Accept option. ``link`` holds
    the attributes announced for the path in /.well-known/core.
    """

    path: Tuple[str, ...]
    render: Renderer
    formats: Tuple[int, ...]
    methods: Tuple[Code, ...] = (GET,)
    resource: Optional[ObservableResource] = None
    link: Optional[str] = None

    @property
    def observable(self) -> bool:
        return self.resource is not None

    @property
    def uri(self) -> str:
        return "/" + "/".join(self.path)


def request_path(request: Message) -> str:
    return "/" + "/".join(request.opt.uri_path)


def is_observe_registration(request: Message) -> bool:
    return request.opt.observe == 0


class RequestDispatcher:
    def __init__(self) -> None:
        self._routes: Dict[Tuple[str, ...], Route] = {}

    def add_route(self, route: Route) -> None:
        self._routes[route.path] = route

    def add_resource(
        self,
        path: Tuple[str, ...],
        resource: ObservableResource,
        formats: Tuple[int, ...],
        link: Optional[str] = None,
    ) -> None:
        self.add_route(Route(path, resource.handle_one_shot, formats, resource=resource, link=link))

    def add_discovery(self) -> None:
        self.add_route(Route(WELL_KNOWN_CORE, self._render_discovery, (LINK_FORMAT,)))

    def link_format(self) -> str:
        """RFC 6690 listing of every route that announces itself."""
        links = []
        for route in self._routes.values():
            if route.link is None:
                continue
            attributes = ";obs" if route.observable else ""
            links.append(f"<{route.uri}>{attributes};{route.link}")
        return ",".join(links)

    def _render_discovery(self, content_format: int) -> Message:
        return Message(code=CONTENT, payload=self.link_format().encode("utf-8"), content_format=content_format)

    def resolve(self, request: Message) -> Tuple[Route, int]:
        """Find the route and negotiate the content format, or raise the matching StationError."""
        route = self._routes.get(tuple(request.opt.uri_path))
        if route is None:
            raise RoutingError()
        if request.code not in route.methods:
            raise MethodError(tuple(method.name for method in route.methods))
        accept = request.opt.accept
        if accept is None:
            return route, route.formats[0]
        if int(accept) not in route.formats:
            raise NegotiationError(MEDIA_TYPES.get(route.formats[0], str(route.formats[0])))
        return route, int(accept)

    def dispatch(self, request: Message) -> Message:
        """Answer a request once; every failure becomes a status response."""
        path = request_path(request)
        logger.info('Handling request for "%s"', path, extra={"path": path})
        try:
            route, content_format = self.resolve(request)
            return route.render(content_format)
        except StationError as exc:
            logger.info("Rejected request: %s", exc.message, extra={"path": path, "code": exc.code})
            return exc.to_message()
        except Exception:
            logger.exception("Handler failed", extra={"path": path})
            return StationError().to_message()

    def observe(self, request: Message, stream: ObservationStream) -> Optional[ObserverHandle]:
        """
        Register ``stream`` as an observer if the request asks for it and the
        route allows it.

        In every other case the stream is closed with the response the client
        would have got for a plain request, and None is returned.
        """
        path = request_path(request)
        try:
            route, content_format = self.resolve(request)
            if not (route.observable and is_observe_registration(request)):
                stream.close(self.dispatch(request))
                return None
            logger.info('Observe registration for "%s"', path, extra={"path": path})
            return route.resource.register_observer(stream, content_format)
        except StationError as exc:
            logger.info("Rejected observation: %s", exc.message, extra={"path": path, "code": exc.code})
            stream.close(exc.to_message())
        except Exception:
            logger.exception("Observe handler failed", extra={"path": path})
            stream.close(StationError().to_message())
        return None
