import json, os, re, time, errno, tempfile, shutil, threading, logging
from json import JSONDecodeError
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from listingflow.config import MAX_LOG_ENTRIES

LEVELS = ("info", "success", "error")
SAVE_RETRIES = 5
SAVE_RETRY_DELAY_SECS = 0.15  # 150 ms
BACKUP_SUFFIX = ".corrupt.bak"

logger = logging.getLogger("uvicorn.error")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# -------------------------------------------------
# Low-level load/save with auto-fix
# -------------------------------------------------
def _try_repair_json(text: str) -> Optional[list]:
    """
    Best-effort fixer for a partially written log file.
    - Strip NULLs / BOM
    - Drop trailing commas
    - Truncate to the last complete entry
    Returns the entry list if successful, else None.
    """
    cleaned = text.replace("\x00", "").lstrip("\ufeff")

    try:
        return json.loads(cleaned)
    except JSONDecodeError:
        pass

    cleaned2 = re.sub(r",(\s*[}\]])", r"\1", cleaned)
    try:
        return json.loads(cleaned2)
    except JSONDecodeError:
        pass

    # A cut-off array: keep every complete entry before the break
    return _complete_entries(cleaned2)


def _complete_entries(text: str) -> Optional[list]:
    """Decode array items one at a time and stop at the first broken one."""
    start = text.find("[")
    if start == -1:
        return None

    decoder = json.JSONDecoder()
    entries: list = []
    pos = start + 1
    while True:
        while pos < len(text) and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(text) or text[pos] == "]":
            break
        try:
            entry, pos = decoder.raw_decode(text, pos)
        except JSONDecodeError:
            break
        entries.append(entry)

    return entries or None


def _atomic_write(path: Path, payload: list):
    # temp file + rename so readers never see a half-written log
    directory = str(path.parent)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            json.dump(payload, tmp_file, indent=2, ensure_ascii=False, default=str)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def _timestamp_key(entry: Dict[str, Any]) -> str:
    return str(entry.get("timestamp") or "")


class EventLog:
    """
    Append-only webhook event log kept as one JSON array on disk.
    Newest entry first, capped at `max_entries`.
    """

    def __init__(self, path: Path | str, max_entries: int = MAX_LOG_ENTRIES):
        self.path = Path(path)
        self.max_entries = max_entries
        self._lock = threading.Lock()

    def _ensure_dir(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []

        data_txt = self.path.read_text(encoding="utf-8", errors="replace")
        if not data_txt.strip():
            return []

        try:
            data = json.loads(data_txt)
        except JSONDecodeError:
            repaired = _try_repair_json(data_txt)
            # Back up the bad file, then overwrite with whatever survived
            try:
                shutil.copy2(self.path, str(self.path) + BACKUP_SUFFIX)
            except OSError as e:
                logger.warning(f"[EventLog] Could not back up damaged log: {e}")
            if repaired is None:
                logger.warning(f"[EventLog] Unreadable log file {self.path}, starting a new one")
                repaired = []
            else:
                logger.warning(f"[EventLog] Repaired damaged log file {self.path}")
            _atomic_write(self.path, repaired)
            data = repaired

        if not isinstance(data, list):
            raise ValueError(f"Event log {self.path} does not contain a JSON array")
        return data

    def _save(self, entries: List[Dict[str, Any]]):
        # simple retry loop for NFS / concurrent access
        for _ in range(SAVE_RETRIES):
            try:
                _atomic_write(self.path, entries)
                return
            except OSError as e:
                if e.errno in (errno.EAGAIN, errno.EBUSY):
                    time.sleep(SAVE_RETRY_DELAY_SECS)
                    continue
                raise
        raise RuntimeError("Failed to save event log after retries")

    def read_events(self) -> List[Dict[str, Any]]:
        """All stored events, newest first."""
        self._ensure_dir()
        with self._lock:
            events = self._load()
        return sorted(events, key=_timestamp_key, reverse=True)

    def log_event(self, level: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level {level!r}")

        entry: Dict[str, Any] = {
            "timestamp": now_iso(),
            "level": level,
            "message": message,
        }
        if details:
            entry["details"] = details

        # a broken log file must never fail the webhook itself
        try:
            self._ensure_dir()
            with self._lock:
                current = self._load()
                self._save([entry, *current][: self.max_entries])
        except (OSError, ValueError, RuntimeError):
            logger.exception(f"[EventLog] Failed to write event: {message}")
        return entry
