"""
Print every insert written to a replica set

    MONGODB_URI=mongodb://localhost:27017/?replicaSet=rs0 python examples/print_inserts.py
"""

import os
import signal
import sys

import structlog
from pymongo import MongoClient

from mongo_oplog import Oplog, OplogConnectionError
from mongo_oplog.cdc.builder import OplogBuilder
from mongo_oplog.config.loader import load_config
from mongo_oplog.observability.logging import bind_context, configure_logging
from mongo_oplog.observability.metrics import start_metrics_server

logger = structlog.get_logger(__name__)


def main() -> int:
    config = load_config()
    configure_logging(config.observability.log_level, config.observability.log_format)
    bind_context(namespace=config.namespace)
    if config.observability.metrics_enabled:
        start_metrics_server(port=config.observability.metrics_port)

    client = MongoClient(os.environ.get("MONGODB_URI", "mongodb://localhost"))

    try:
        oplog: Oplog = OplogBuilder.from_settings(config).filter({"op": "i"}).build(client)
    except OplogConnectionError as e:
        logger.error("Could not open oplog", error=str(e))
        return 1

    def signal_handler(signum, frame):
        logger.info("Signal received", signal=signum)
        oplog.close()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    failed = False
    with oplog:
        for result in oplog:
            if not result.ok:
                logger.error("Oplog error", error=str(result.error))
                failed = isinstance(result.error, OplogConnectionError)
                continue
            print(result.operation.to_json())

    logger.info("Oplog stream ended", last_timestamp=oplog.last_timestamp)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
