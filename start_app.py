#!/usr/bin/env python
"""Serve the marketsync API; PORT and HOST come from the environment."""
import os

import uvicorn

from marketsync.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    port = int(os.environ.get("PORT", 8000))
    host = os.environ.get("HOST", "0.0.0.0")

    uvicorn.run(
        "marketsync.main:app",
        host=host,
        port=port,
        log_level=settings.LOG_LEVEL.lower(),
        proxy_headers=True,
    )
