"""Test support helpers: in-memory store and source fakes."""
