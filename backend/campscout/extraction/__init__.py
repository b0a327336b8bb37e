"""Extraction package — import built-ins to trigger @register_logic decorators."""

from campscout.extraction.jsonld_events import JsonLdEventsLogic, RenderedJsonLdEventsLogic  # noqa: F401
