"""
Append-only JSONL log of sync job runs, one file per day.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


def append_sync_log(
    entry: Dict[str, Any],
    logs_dir: Union[str, Path],
    prefix: str = "scraper-sync",
    now: Optional[datetime] = None
) -> Path:
    """
    Append one job run to <logs_dir>/<prefix>-YYYY-MM-DD.jsonl.

    Args:
        entry: JSON-serializable run summary
        logs_dir: Directory holding the daily log files
        prefix: File name prefix, one per job type
        now: Timestamp for the entry (defaults to current UTC time)

    Returns:
        Path of the log file written
    """
    now = now or datetime.now(timezone.utc)
    log_dir = Path(logs_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"{prefix}-{now.strftime('%Y-%m-%d')}.jsonl"
    record = {'timestamp': now.isoformat(), **entry}

    with open(log_file, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, default=str) + '\n')

    logger.debug(f"Logged sync run to {log_file}")
    return log_file
