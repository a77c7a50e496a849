"""Entry point for running the verification gateway via python -m bots"""

import asyncio

from bots.runtime import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
