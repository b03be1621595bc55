"""
Relay Configuration

Per-process configuration for the Veil authorization relay.
"""

from dataclasses import dataclass
from typing import List

from veil.config.settings import ProxySettings, RoutingMode

DEFAULT_UPSTREAM_TIMEOUT = 5.0


@dataclass
class ProxyConfig:
    """
    Configuration for one relay process.

    Attributes:
        target_socket_path: Existing UNIX socket that requests are relayed to
        exposed_socket_path: UNIX socket created for callers to connect to
        rules_path: Access-rules file, one METHOD~path rule per line
        upstream_timeout: Seconds allowed from request construction to
            upstream response headers
        routing_mode: Method-keyed or path-keyed rule matching
        mirror_status_codes: Set the HTTP status line to the error body's code
        forward_query_string: Append the inbound query string when relaying
        access_log: Enable the uvicorn access log
    """

    target_socket_path: str
    exposed_socket_path: str
    rules_path: str

    upstream_timeout: float = DEFAULT_UPSTREAM_TIMEOUT
    routing_mode: RoutingMode = RoutingMode.METHOD
    mirror_status_codes: bool = True
    forward_query_string: bool = True
    access_log: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: ProxySettings,
        target_socket_path: str,
        exposed_socket_path: str,
        rules_path: str,
    ) -> "ProxyConfig":
        """Create configuration from CLI paths plus environment settings."""
        return cls(
            target_socket_path=target_socket_path,
            exposed_socket_path=exposed_socket_path,
            rules_path=rules_path,
            upstream_timeout=settings.upstream_timeout,
            routing_mode=settings.routing_mode,
            mirror_status_codes=settings.mirror_status_codes,
            forward_query_string=settings.forward_query_string,
            access_log=settings.access_log,
        )

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.target_socket_path:
            errors.append("Target socket path is required")

        if not self.exposed_socket_path:
            errors.append("Exposed socket path is required")

        if self.target_socket_path and self.target_socket_path == self.exposed_socket_path:
            errors.append("Exposed socket path must differ from the target socket path")

        if self.upstream_timeout <= 0:
            errors.append("Upstream timeout must be positive")

        return errors
