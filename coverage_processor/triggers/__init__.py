"""Trigger adapters: registry push events to bundle references."""

from coverage_processor.triggers.quay import parse_push_event

__all__ = ["parse_push_event"]
