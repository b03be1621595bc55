"""
Veil - UNIX Domain Socket Authorization Relay
Main entry point for the application.

Usage:
    python main.py <path-to-target-socket> <path-to-exposed-socket> <path-to-access-rules-list>
"""

import sys

from dotenv import load_dotenv

# Load environment variables before any settings are read
load_dotenv(".env.local")

from veil.proxy.server import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
