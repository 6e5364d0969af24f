"""Exceptions raised by the upstream API connectors."""


class ConnectorError(Exception):
    """An upstream API answered with something other than success."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RegistryError(ConnectorError):
    """Registry or repository search failed (non-success status, network, bad payload)."""


class RateLimitError(ConnectorError):
    """Upstream quota exhausted. Authenticating raises the limit."""
