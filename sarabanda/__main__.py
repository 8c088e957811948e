"""Entry point: `python -m sarabanda` serves the operator and display API."""

import uvicorn

from sarabanda.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "sarabanda.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
