"""Command line interface modules.

This package provides the command-line tools for:
- Starting the proxy server from flags and environment variables
- Loading the credentials file
- Listing network interfaces for outbound selection
- Shutting down on SIGINT/SIGTERM

The command modules turn user input into a resolved ``ProxyConfig`` and hand
it to the core; they contain no protocol logic.
"""
