#!/usr/bin/env python
"""Dramatiq worker entry point with a startup reconciliation sweep."""

import os
import shutil
import sys

import structlog

from saft_admin.logging import setup_logging

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """Dispatch a reconciliation sweep and start Dramatiq workers."""
    # Import tasks to register broker (this triggers saft_admin.tasks.__init__.py)
    from saft_admin.tasks.maintenance import reconcile_line_items

    reconcile_line_items.send()
    logger.info("Dispatched startup reconciliation sweep")

    # Exec into dramatiq CLI with any additional args
    # sys.argv[0] is this script, pass the rest to dramatiq
    dramatiq_path = shutil.which("dramatiq")
    if dramatiq_path is None:
        logger.error("Dramatiq executable not found in PATH")
        sys.exit(1)

    os.execv(dramatiq_path, [dramatiq_path, "saft_admin.tasks", *sys.argv[1:]])


if __name__ == "__main__":
    main()
