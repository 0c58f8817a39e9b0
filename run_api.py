"""
Start the groupvote API: python run_api.py
"""

import logging
import sys

from groupvote.main import run


def main() -> None:
    try:
        run()
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logging.exception("API failed to start.")
        sys.exit(1)


if __name__ == "__main__":
    main()
