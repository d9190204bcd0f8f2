"""RDF payloads for the device description and the sensor reading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple

from rdflib import XSD, Graph, Literal, Namespace, URIRef
from rdflib.term import Node

from weatherstation.device import DeviceDescriptor
from weatherstation.readings import Reading

ITM = Namespace("http://itm.uni-luebeck.de/")

DEFAULT_PREFIXES: Mapping[str, str] = {
    "xsd": str(XSD),
    "itm": str(ITM),
}

# CoAP content-format numbers; the RDF ones are not IANA registered and match
# what the station has always announced
TEXT_PLAIN = 0
LINK_FORMAT = 40
RDF_XML = 201
TURTLE = 202
N3 = 203


@dataclass(frozen=True)
class ContentFormat:
    number: int
    media_type: str
    rdflib_format: str


RDF_FORMATS: Dict[int, ContentFormat] = {
    TURTLE: ContentFormat(TURTLE, "text/turtle", "turtle"),
    RDF_XML: ContentFormat(RDF_XML, "application/rdf+xml", "xml"),
    N3: ContentFormat(N3, "text/n3", "n3"),
}

Triple = Tuple[Node, Node, Node]


class RepresentationBuilder:
    """
    Builds the triple sets and serializes them.

    The triple sets depend only on the reading (or descriptor) and the prefix
    table, so equal inputs give equal triples whatever the byte layout.
    """

    def __init__(self, sensor_link: str, prefixes: Mapping[str, str] = DEFAULT_PREFIXES) -> None:
        self.prefixes = dict(prefixes)
        self.sensor = ITM[sensor_link]
        self.status = ITM[f"{sensor_link}Status"]

    def device_triples(self, device: DeviceDescriptor) -> List[Triple]:
        subject = ITM[device.device_id]
        triples: List[Triple] = [
            (subject, ITM.hasLabel, Literal(device.label)),
            (subject, ITM.hasGroup, Literal(device.group)),
        ]
        triples.extend((subject, ITM.hasIP, Literal(address)) for address in device.addresses)
        triples.append((subject, ITM.hasSensor, ITM[device.sensor_link]))
        return triples

    def sensor_triples(self, reading: Reading) -> List[Triple]:
        if isinstance(reading.value, str):
            value = Literal(reading.value)
        else:
            value = Literal(round(float(reading.value), 1), datatype=XSD.float)
        # keep the millisecond "Z" form instead of rdflib's normalized one
        modified = Literal(reading.iso_timestamp(), datatype=XSD.dateTime, normalize=False)
        return [
            (self.sensor, ITM.lastModified, modified),
            (self.sensor, ITM.hasStatus, self.status),
            (self.status, ITM.hasValue, value),
        ]

    def serialize(self, triples: Iterable[Triple], content_format: int = TURTLE) -> bytes:
        fmt = RDF_FORMATS[content_format]
        graph = Graph()
        for prefix, uri in self.prefixes.items():
            graph.bind(prefix, URIRef(uri))
        for triple in triples:
            graph.add(triple)
        return graph.serialize(format=fmt.rdflib_format, encoding="utf-8")

    def device(self, device: DeviceDescriptor, content_format: int = TURTLE) -> bytes:
        return self.serialize(self.device_triples(device), content_format)

    def reading(self, reading: Reading, content_format: int = TURTLE) -> bytes:
        return self.serialize(self.sensor_triples(reading), content_format)
