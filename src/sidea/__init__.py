"""Side A - vinyl collection metadata and artwork resolution engine."""

__version__ = "0.4.0"
