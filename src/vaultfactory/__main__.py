# Main Entry Point - API server
#
# python -m vaultfactory [--host H] [--port P] [--env-file F]
#
# Loads VAULT_* configuration (optionally from a .env file), configures
# logging and serves the HTTP API with uvicorn.

import argparse
import sys

from pydantic import ValidationError

from . import __version__
from .core import configure_logging, generate_jwt_secret, VaultConfig


def main(argv=None):
    """Main entry point for the vaultfactory server."""
    parser = argparse.ArgumentParser(
        prog="vaultfactory",
        description="vaultfactory - encrypted personal data vault API server",
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind to (default: VAULT_HOST or 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: VAULT_PORT or 8000)"
    )

    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with VAULT_* settings"
    )

    parser.add_argument(
        "--generate-secret",
        action="store_true",
        help="Print a random value for VAULT_JWT_SECRET and exit"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"vaultfactory v{__version__}"
    )

    args = parser.parse_args(argv)

    if args.generate_secret:
        print(generate_jwt_secret())
        return 0

    try:
        config = VaultConfig.from_env(args.env_file)
    except (RuntimeError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if overrides:
        config = config.model_copy(update=overrides)

    configure_logging(config.log_level, config.log_format)

    from .api.main import start_api_server

    start_api_server(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
