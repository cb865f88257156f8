"""Run the puushy HTTP server with ``python -m src.puushy``."""

import uvicorn

from .config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "src.puushy.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
