"""
localchat - Entry point

    python -m localchat

Binds to ``HOST``/``PORT`` (default 127.0.0.1:8000).
"""

import uvicorn

from .core.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "localchat.server:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
