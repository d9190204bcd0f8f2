from __future__ import annotations

from datetime import datetime, timezone

from rdflib import XSD, Graph, Literal

from conftest import SENSOR_LINK
from weatherstation.readings import Reading
from weatherstation.representation import ITM, N3, RDF_XML, TURTLE

STAMP = datetime(2024, 3, 1, 12, 30, 5, 250000, tzinfo=timezone.utc)


def _parse(payload: bytes, fmt: str = "turtle") -> Graph:
    graph = Graph()
    graph.parse(data=payload.decode("utf-8"), format=fmt)
    return graph


def test_sensor_representation_has_three_triples(builder) -> None:
    graph = _parse(builder.reading(Reading(value=30.0, timestamp=STAMP)))

    assert len(graph) == 3
    sensor = ITM[SENSOR_LINK]
    status = ITM[f"{SENSOR_LINK}Status"]

    modified = graph.value(sensor, ITM.lastModified)
    assert modified.datatype == XSD.dateTime
    assert modified.toPython() == STAMP
    assert graph.value(sensor, ITM.hasStatus) == status
    value = graph.value(status, ITM.hasValue)
    assert value.datatype == XSD.float
    assert value.toPython() == 30.0


def test_timestamp_keeps_millisecond_lexical_form(builder) -> None:
    triples = builder.sensor_triples(Reading(value=30.0, timestamp=STAMP))
    assert str(triples[0][2]) == "2024-03-01T12:30:05.250Z"


def test_numeric_value_is_rounded_to_one_decimal(builder) -> None:
    triples = builder.sensor_triples(Reading(value=23.4567, timestamp=STAMP))
    assert triples[2][2] == Literal(23.5, datatype=XSD.float)


def test_string_value_is_emitted_as_is(builder) -> None:
    triples = builder.sensor_triples(Reading(value="23.4567", timestamp=STAMP))
    assert triples[2][2] == Literal("23.4567")


def test_triples_are_deterministic(builder) -> None:
    reading = Reading(value=31.25, timestamp=STAMP)
    assert builder.sensor_triples(reading) == builder.sensor_triples(Reading(value=31.25, timestamp=STAMP))


def test_timestamp_is_rendered_in_utc() -> None:
    local = datetime.fromisoformat("2024-03-01T14:30:05+02:00")
    assert Reading(value=1.0, timestamp=local).iso_timestamp() == "2024-03-01T12:30:05.000Z"


def test_device_representation(builder, descriptor) -> None:
    graph = _parse(builder.device(descriptor))
    device = ITM["device05"]

    assert graph.value(device, ITM.hasLabel) == Literal("Weather station")
    assert graph.value(device, ITM.hasGroup) == Literal("SVA_05-SS15")
    assert set(graph.objects(device, ITM.hasIP)) == {Literal("192.168.0.10"), Literal("10.0.0.5")}
    assert graph.value(device, ITM.hasSensor) == ITM[SENSOR_LINK]
    assert len(graph) == 5


def test_turtle_uses_prefixes(builder) -> None:
    payload = builder.reading(Reading(value=30.0, timestamp=STAMP), TURTLE).decode("utf-8")
    assert "@prefix itm: <http://itm.uni-luebeck.de/>" in payload
    assert "@prefix xsd: <http://www.w3.org/2001/XMLSchema#>" in payload


def test_other_rdf_formats_carry_the_same_triples(builder) -> None:
    reading = Reading(value=30.0, timestamp=STAMP)
    turtle = _parse(builder.reading(reading, TURTLE))
    xml = _parse(builder.reading(reading, RDF_XML), "xml")
    n3 = _parse(builder.reading(reading, N3), "n3")
    assert set(turtle) == set(xml) == set(n3)
