"""Entry point for running the scheduler daemon directly.

Usage: python -m goldagent.scheduler
"""

import sys

from goldagent.scheduler.daemon import configure_logging, start_daemon

if __name__ == "__main__":
    configure_logging()
    sys.exit(start_daemon())
