"""
Entry point for `python -m labplay` or the `labplay` command.
Runs the REPL against LAB_BACKEND_URL / LAB_AGENT_URL.
"""

import sys

from labplay.config import LabConfig
from labplay.logger import setup_logging


def main() -> None:
    if "--version" in sys.argv or "-v" in sys.argv:
        from labplay import __version__
        print(f"labplay {__version__}")
        return
    config = LabConfig.from_env()
    setup_logging(config.log_level)

    from labplay.cli.repl import run_repl

    run_repl(config=config)


if __name__ == "__main__":
    main()
