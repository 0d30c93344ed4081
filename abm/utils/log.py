import sys
import threading
from pathlib import Path
from typing import Optional, Any
from .time import now_local

# Set by setup_logging(); when unset, lines only go to the console.
LOG_DIR: Optional[Path] = None
SYNC_LOG_PATH: Optional[Path] = None

_LOG_LOCK = threading.Lock()

def setup_logging(log_dir: Path, log_name: Optional[str] = None) -> Path:
    """Route log lines to a daily file under log_dir (sync-YYYY-MM-DD.log)."""
    global LOG_DIR, SYNC_LOG_PATH
    LOG_DIR = Path(log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    if not log_name:
        log_name = f"sync-{now_local().strftime('%Y-%m-%d')}.log"
    SYNC_LOG_PATH = LOG_DIR / log_name
    return SYNC_LOG_PATH

def _append(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")

def log_line(msg: Any, level: str = "INFO") -> None:
    """
    Logging wrapper (single timestamp, readable):
    - Prefix every line with: YYYY-MM-DD // HH:MM:SS+HH:MM -
    - WARN/ERROR lines go to stderr, everything else to stdout.
    """
    line = str(msg).strip()

    with _LOG_LOCK:
        prefix = now_local().strftime("%Y-%m-%d // %H:%M:%S%z")
        if len(prefix) >= 5:
            prefix = prefix[:-2] + ":" + prefix[-2:]

        full = f"{prefix} - {line}" if line else f"{prefix} -"

        if SYNC_LOG_PATH:
            _append(SYNC_LOG_PATH, full)

        stream = sys.stderr if level in ("WARN", "ERROR") else sys.stdout
        print(full, file=stream, flush=True)
