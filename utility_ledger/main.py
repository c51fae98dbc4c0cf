"""Main application entry point."""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from utility_ledger.services.logging import setup_server_logging

# Load environment variables
load_dotenv()

# Configure logging (with file logging)
setup_server_logging()
logger = logging.getLogger(__name__)


def main():
    """Run the ledger API server."""
    parser = argparse.ArgumentParser(description="Utility Ledger API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    logger.info(f"Starting Uvicorn server on {args.host}:{args.port}...")
    uvicorn.run(
        "utility_ledger.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
