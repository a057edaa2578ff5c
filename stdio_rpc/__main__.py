"""Allow ``python -m stdio_rpc``."""

from stdio_rpc.cli import app

if __name__ == "__main__":
    app()
