"""Core proxy server implementation.

This package contains the core components of the SOCKS proxy server:
- Protocol handlers (SOCKS5 negotiation, requests and replies)
- Outbound dialing and error-to-reply mapping
- The bidirectional relay and its buffer pool
- Network interface lookup
- Configuration and exception handling

The core package provides all the protocol functionality, while keeping the
command-line surface separate.
"""
