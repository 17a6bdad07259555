"""
Start Decision Engine API Server

Run the Regimex Decision Engine REST API on port 8010.
Settings are read from REGIMEX_* environment variables (and a .env file).
"""

import uvicorn
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Ensure logs directory exists before the file handler opens it
Path("logs").mkdir(exist_ok=True)

logging.basicConfig(
    level=os.environ.get("REGIMEX_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('logs/decision_engine_api.log')
    ]
)

logger = logging.getLogger(__name__)


def main():
    """Start Decision Engine API server"""
    host = os.environ.get("REGIMEX_HOST", "127.0.0.1")
    port = int(os.environ.get("REGIMEX_PORT", "8010"))

    logger.info("=" * 80)
    logger.info("REGIMEX DECISION ENGINE API")
    logger.info("=" * 80)
    logger.info(f"Starting server on http://{host}:{port}")
    logger.info(f"Swagger UI: http://{host}:{port}/docs")
    logger.info(f"Store backend: {os.environ.get('REGIMEX_STORE_BACKEND', 'memory')}")
    logger.info("=" * 80)

    try:
        uvicorn.run(
            "regimex.api:app",
            host=host,
            port=port,
            log_level="info",
            reload=False
        )
    except KeyboardInterrupt:
        logger.info("\nShutting down Decision Engine API...")
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
