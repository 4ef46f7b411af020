"""Run the storyboard API: python -m storypipe.api"""
import uvicorn

from storypipe import configure_logging
from storypipe.config import settings

if __name__ == "__main__":
    configure_logging()
    uvicorn.run(
        "storypipe.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )
