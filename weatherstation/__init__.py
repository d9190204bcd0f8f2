"""CoAP weather station exposing observable sensor readings and an RDF device description."""

__version__ = "0.1.0"
