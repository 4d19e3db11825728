#!/usr/bin/env python3
"""
Indexer Runner
Streams ScoreSBT / PermissionManager / ScoreOracle logs from the configured
RPC node into the entity store.

Resumes from the stored cursor. Re-reading the cursor's own block is safe:
events at or before the cursor are skipped as duplicates.

Usage:
    python -m scripts.run_indexer [--once]

    --once   stop after catching up to the safe head instead of following the chain

Environment: DATABASE_URL, RPC_URL, SCORE_SBT_ADDRESS, PERMISSION_MANAGER_ADDRESS,
SCORE_ORACLE_ADDRESS, START_BLOCK, BLOCK_STRIDE, CONFIRMATIONS, LOG_LEVEL
"""
import logging
import sys
import os

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from credora_indexer import config
from credora_indexer.database import SessionLocal, init_db
from credora_indexer.errors import EventProcessingError, IndexerError
from credora_indexer.services.indexing import IndexingEngine
from credora_indexer.services.source import Web3EventSource


logger = logging.getLogger("credora_indexer.runner")


def resume_block(engine: IndexingEngine) -> int:
    """First block to read: the cursor's block, or START_BLOCK on a fresh store."""
    block_number, _ = engine.cursor_position()
    if block_number < 0:
        return config.START_BLOCK
    return block_number


def run(follow: bool = True) -> bool:
    init_db()

    db = SessionLocal()
    try:
        engine = IndexingEngine(db)
        start_block = resume_block(engine)
        logger.info(f"Starting indexer at block {start_block} (follow={follow})")

        source = Web3EventSource.from_config(start_block=start_block, follow=follow)
        result = engine.run(source)
        logger.info(f"Indexer stopped: {result.to_dict()}")
        return True

    except EventProcessingError as e:
        logger.error(f"Indexer aborted at {e.position}: {e}")
        return False
    except IndexerError as e:
        # Undecodable log or bad source data; the cursor stays on the last applied event
        logger.error(f"Indexer aborted after {engine.cursor_position()}: {e}")
        return False
    finally:
        db.close()


def main():
    args = sys.argv[1:]
    if any(a not in ("--once",) for a in args):
        print(__doc__)
        sys.exit(1)

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    success = run(follow="--once" not in args)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
