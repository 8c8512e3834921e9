"""
Main entry point for the bank statement converter.

This module loads configuration and starts the FastAPI server.
"""
import sys
from pathlib import Path

# Add project root to Python path for module imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from core.config import get_settings
from core.exceptions import ConfigurationError
from core.logger import setup_logger

# Load environment variables from .env file
_env_file = PROJECT_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    print("Warning: .env file not found. Using environment variables or defaults.")

logger = setup_logger(__name__)


def main():
    """Main application entry point."""
    try:
        settings = get_settings()

        import uvicorn
        from app.api import app

        logger.info(f"Starting {settings.app_name}")
        logger.info(f"Extraction model: {settings.openai_model} ({settings.extraction_mode} mode)")
        logger.info(f"Log Level: {settings.log_level}")
        logger.info(f"Pages per chunk: {settings.pages_per_chunk}, pacing: {settings.pacing_delay:g}s")
        logger.info(
            f"Retries per chunk: {settings.max_chunk_retries}, "
            f"rate-limit backoff: {settings.rate_limit_backoff:g}s"
        )
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY not set; PDF and image extraction require a per-request api_key")

        logger.info(f"Starting server on {settings.host}:{settings.port}")

        uvicorn.run(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower()
        )

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        if e.details:
            logger.error(f"Details: {e.details}")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Failed to start application: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
