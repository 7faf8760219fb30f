#!/usr/bin/env python3
"""
Startup script for the TemSafy Pro backend
"""

import logging

import uvicorn

from app.config.logging_config import setup_logging
from app.config.settings import AppConfig

logger = logging.getLogger(__name__)


def main():
    setup_logging()
    server = AppConfig.SERVER

    logger.info("Starting TemSafy Pro server on %s:%s (reload=%s)", server['host'], server['port'], server['reload'])

    uvicorn.run(
        "main:app",
        host=server['host'],
        port=server['port'],
        reload=server['reload'],
        log_level=AppConfig.LOG_LEVEL.lower()
    )

if __name__ == "__main__":
    main()
