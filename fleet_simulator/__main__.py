"""Run the simulator: python -m fleet_simulator [config.json]"""

import asyncio
import json
import logging
import sys

from . import async_run_fleet, load_config
from .core.exceptions import ConfigurationException


def main() -> int:
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    data = {}
    if len(sys.argv) > 1:
        with open(sys.argv[1], encoding="utf-8") as handle:
            data = json.load(handle)
    try:
        config = load_config(data)
    except ConfigurationException as err:
        logging.getLogger(__name__).error(str(err))
        return 2
    try:
        asyncio.run(async_run_fleet(config))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
