"""
Entry point for running as module: python -m listtable
"""

import os

import uvicorn

from .monitor import setup_logging


def main():
    """Run the HTTP service."""
    logger = setup_logging()
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8765"))
    logger.info("Starting list table service on %s:%s", host, port)
    uvicorn.run("listtable.app:app", host=host, port=port, log_level="info")


if __name__ == '__main__':
    main()
