"""Run the operator API (and the worker, with SYNC_AUTOSTART) under uvicorn"""

import uvicorn

from .config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "pgmirror.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload
    )


if __name__ == "__main__":
    main()
