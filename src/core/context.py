"""Caller context resolved from request headers."""

from dataclasses import dataclass


@dataclass
class CallerContext:
    """Caller key token plus request metadata carried into services."""

    key: str
    ip_address: str | None = None
    user_agent: str | None = None
    referer: str | None = None

    def __post_init__(self):
        if not self.key:
            raise ValueError("Caller key is required in caller context")
