"""Public Key Domain tools: keys, simplified zones, record packets, resolver configuration and DNS-over-HTTPS."""

__version__ = "0.7.1"