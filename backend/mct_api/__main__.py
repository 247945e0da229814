"""Run the API server: ``python -m mct_api``."""

import uvicorn

from mct_api.config import settings
from mct_api.logging_config import setup_logging
from mct_api.main import app


def run() -> None:
    setup_logging(settings)
    # lifespan="on": a PoolInitError aborts startup and uvicorn exits non-zero,
    # as does a failure to bind the port.
    uvicorn.run(app, host="0.0.0.0", port=settings.port, lifespan="on", log_config=None)


if __name__ == "__main__":
    run()
