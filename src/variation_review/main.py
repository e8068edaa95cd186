"""
Main entry point for the variation review server.
"""

import argparse
import sys

import uvicorn

from . import __version__
from .config.settings import get_settings
from .observability.logging import get_logger, setup_logging

logger = get_logger(__name__)


def main(argv=None):
    """Main application entry point with server startup."""
    parser = argparse.ArgumentParser(description="Variation Review Server")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--version", action="store_true", help="Show version")

    args = parser.parse_args(argv)

    if args.version:
        print(f"Variation Review v{__version__}")
        return

    settings = get_settings()
    setup_logging(args.log_level or settings.observability.log_level)

    logger.info(
        "Variation Review starting",
        environment=settings.environment,
        model=settings.llm.name,
        context_backend=settings.context.backend,
    )

    uvicorn.run(
        "variation_review.api.server:app",
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        reload=args.reload or settings.api.reload,
        log_level=(args.log_level or settings.observability.log_level).lower(),
    )


def cli_main():
    """CLI entry point."""
    try:
        main(sys.argv[1:])
        sys.exit(0)
    except KeyboardInterrupt:
        print("\nVariation Review shutdown")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        print(f"Startup failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
