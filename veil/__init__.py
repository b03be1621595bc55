"""
Veil - UNIX Domain Socket Authorization Relay

Filters HTTP requests arriving on an exposed UNIX socket against an
allowlist of (method, path) rules before relaying them to a target socket.
"""

__version__ = "0.1.0"
