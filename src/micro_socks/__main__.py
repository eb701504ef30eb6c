"""Allow ``python -m micro_socks``."""

from micro_socks.cmd.cli import app

if __name__ == "__main__":
    app()
