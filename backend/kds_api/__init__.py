"""KDS order distribution service."""
