import logging

import uvicorn

from qualia_core.config.settings import settings


def main() -> None:
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    uvicorn.run(
        "qualia_server.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
