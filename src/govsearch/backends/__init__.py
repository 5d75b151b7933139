"""Backends the searchers consume: catalog stores, full text, authority and current access."""
