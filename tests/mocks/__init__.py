"""Canned eBay payloads shared by the unit tests."""
