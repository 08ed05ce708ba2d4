import os

import uvicorn

from skyroute.check_ollama import check_ollama
from skyroute.config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


def maybe_check_ollama() -> None:
    """
    Run the Ollama preflight when the language-model parser is enabled.
    Set SKYROUTE_SKIP_OLLAMA_CHECK=true to skip it (useful in dev/tests).
    """
    if not settings.parser_enabled:
        logger.info("Parser disabled; skipping Ollama preflight")
        return
    if os.getenv("SKYROUTE_SKIP_OLLAMA_CHECK", "false").lower() in ("1", "true", "yes"):
        logger.info("Skipping Ollama preflight (SKYROUTE_SKIP_OLLAMA_CHECK=true)")
        return

    try:
        check_ollama(required_models=[settings.ollama_model], base_url=settings.ollama_base_url)
    except SystemExit:
        logger.error("Ollama preflight failed; set SKYROUTE_SKIP_OLLAMA_CHECK=true to bypass during dev/tests.")
        raise


if __name__ == "__main__":
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))
    maybe_check_ollama()

    uvicorn.run(
        "skyroute.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
