"""
Rooster — Entry Point.

Single entry point: `python main.py` starts the alarm scheduler.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from rooster.app import main

if __name__ == "__main__":
    main()
