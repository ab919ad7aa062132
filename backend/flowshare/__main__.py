"""Run the FlowShare server with ``python -m flowshare``."""
import uvicorn

from flowshare.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "flowshare.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
