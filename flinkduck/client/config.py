"""Gateway connection and polling settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_GATEWAY_URL = "http://localhost:8083"

DEFAULT_SESSION_PROPERTIES = {
    "execution.runtime-mode": "streaming",
    "table.exec.resource.default-parallelism": "1",
    "execution.checkpointing.interval": "10s",
}


@dataclass
class GatewaySettings:
    """Settings for talking to a Flink SQL Gateway.

    Attributes:
        url: Gateway base URL
        username: Basic auth user (used when no API token is set)
        password: Basic auth password
        api_token: Bearer token, takes precedence over basic auth
        timeout: Per-request HTTP timeout in seconds
        poll_interval: Delay between result page fetches in seconds
        sleep_slice: Granularity of the inter-poll sleep in seconds
        max_polls: Hard ceiling on poll iterations per statement
        session_properties: Properties sent when a session is created
    """

    url: str = DEFAULT_GATEWAY_URL
    username: str | None = None
    password: str | None = None
    api_token: str | None = None
    timeout: float = 30.0
    poll_interval: float = 1.0
    sleep_slice: float = 0.05
    max_polls: int = 1000
    session_properties: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_SESSION_PROPERTIES)
    )

    def __post_init__(self) -> None:
        self.url = self.url.rstrip("/")

    @classmethod
    def from_env(cls) -> GatewaySettings:
        """Read settings from ``FLINK_*`` environment variables."""
        return cls(
            url=os.getenv("FLINK_HOST", DEFAULT_GATEWAY_URL),
            username=os.getenv("FLINK_USERNAME") or None,
            password=os.getenv("FLINK_PASSWORD") or None,
            api_token=os.getenv("FLINK_API_TOKEN") or None,
            timeout=float(os.getenv("FLINK_TIMEOUT", "30")),
            poll_interval=float(os.getenv("FLINK_POLL_INTERVAL", "1.0")),
            max_polls=int(os.getenv("FLINK_MAX_POLLS", "1000")),
        )

    @property
    def auth_headers(self) -> dict[str, str]:
        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        return {}

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if not self.api_token and self.username and self.password:
            return (self.username, self.password)
        return None
