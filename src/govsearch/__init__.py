"""govsearch: role and entitlement search over a governance catalog."""

__version__ = "0.1.0"
