import logging

import uvicorn

from lead_crm_svc.config import LOG_LEVEL
from lead_crm_svc.app import app


# Set up logging for the application
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def main():
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    # Entry point for the application
    main()
