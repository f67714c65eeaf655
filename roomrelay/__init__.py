"""Room signaling relay and peer mesh negotiation."""

__version__ = "0.1.0"
