#!/usr/bin/env python3
"""Run the marketplace session service"""
import uvicorn

from marketplace.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "marketplace.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
