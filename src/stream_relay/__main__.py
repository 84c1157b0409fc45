"""Run the stream server: ``python -m stream_relay``."""

import uvicorn

from stream_relay.configs.settings import settings


def main() -> None:
    uvicorn.run(
        "stream_relay.server.app:app",
        host=settings.HOST,
        port=settings.PORT,
        # Sessions live in process memory: a single worker only.
        workers=1,
    )


if __name__ == "__main__":
    main()
