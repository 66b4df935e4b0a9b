"""
Interleaved Sync Example
========================

Runs the load stages of several tables interleaved: while one table is
loading into the target, the next table is already being extracted from the
source. Everything runs in one thread; the point is the ordering of stages,
which a real coordinator would spread over two workers.
"""

from collections import deque

from tablesync import get_settings
from tablesync.core.config import ExtractionMode
from tablesync.sync.manager import SyncManager
from tablesync.utils.logging import setup_logging


def main():
    """Extract table N+1 before loading table N."""
    settings = get_settings("examples/tablesync.yaml")
    setup_logging(level=settings.logging.level, format=settings.logging.format)

    with SyncManager(settings) as manager:
        pending = deque()

        for table, action, stages in manager.stages_for(ExtractionMode.BATCH):
            prepare, extract, load, post_load = stages

            # source side of this table
            action = extract.run(prepare.run(action))

            # target side of the previous table
            if pending:
                name, previous = pending.popleft()
                post_load.run(load.run(previous))
                print(f"✓ {name}")

            pending.append((table, action))

        for name, previous in pending:
            post_load.run(load.run(previous))
            print(f"✓ {name}")

        for wm in manager.registry.list_all():
            print(f"{wm.table_name}: last synced {wm.last_synced_at}")


if __name__ == "__main__":
    main()
