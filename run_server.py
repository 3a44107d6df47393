import os

import uvicorn

from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


if __name__ == "__main__":
    setup_logging(level=os.getenv("SNOWDAY_LOG_LEVEL", "INFO"), job_name="snowday_api")
    logger.info("Starting snow-day API")

    uvicorn.run(
        "snowday.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
