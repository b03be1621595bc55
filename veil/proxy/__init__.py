"""
Veil Relay Module

Authorizes requests against an access-rules allowlist and relays
allowed ones to the target UNIX socket.
"""

from veil.proxy.authorizer import Decision, authorize, build_authorizer
from veil.proxy.config import ProxyConfig
from veil.proxy.gateway import VeilGateway, create_proxy_app
from veil.proxy.relay import RelayClient, RelayOutcome, RelayResult
from veil.proxy.rules import RuleTable, compile_rules, read_rule_lines

__all__ = [
    "Decision",
    "authorize",
    "build_authorizer",
    "ProxyConfig",
    "VeilGateway",
    "create_proxy_app",
    "RelayClient",
    "RelayOutcome",
    "RelayResult",
    "RuleTable",
    "compile_rules",
    "read_rule_lines",
]
