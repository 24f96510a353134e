import os
import threading
from typing import Optional

from sqlalchemy.orm import sessionmaker

from reservation_ledger.config import settings
from reservation_ledger.exceptions import CorruptedCounter
from reservation_ledger.logger_config import get_logger
from reservation_ledger.models import PnrCounterRecord

log = get_logger("pnr")

class MemoryCounterStore:
    """Counter store that lives only as long as the process"""

    def __init__(self, value: Optional[str] = None):
        self.value = value

    def read(self) -> Optional[str]:
        return self.value

    def write(self, value: int) -> None:
        self.value = str(value)

class FileCounterStore:
    """Counter kept as a single decimal number in a text file"""

    def __init__(self, path: str):
        self.path = path

    def read(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                return handle.read()
        except UnicodeDecodeError as exc:
            raise CorruptedCounter(f"PNR counter file {self.path} is not text ({exc.reason})")

    def write(self, value: int) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(str(value))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, self.path)

class SqlCounterStore:
    """Counter kept in the single-row ``pnr_counter`` table"""

    ROW_ID = 1

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def read(self) -> Optional[str]:
        with self.session_factory() as db:
            record = db.get(PnrCounterRecord, self.ROW_ID)
            return record.value if record else None

    def write(self, value: int) -> None:
        with self.session_factory() as db:
            record = db.get(PnrCounterRecord, self.ROW_ID)
            if record is None:
                db.add(PnrCounterRecord(id=self.ROW_ID, value=str(value)))
            else:
                record.value = str(value)
            db.commit()

class PNRGenerator:
    """Monotonic PNR issuer; every issued value is persisted before it is returned"""

    def __init__(self, store, floor: Optional[int] = None):
        self.store = store
        self.floor = settings.PNR_FLOOR if floor is None else floor
        self._lock = threading.Lock()
        self._current = self._load()

    def _parse(self, raw: Optional[str]) -> int:
        if raw is None or not raw.strip():
            return self.floor
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            raise CorruptedCounter(f"PNR counter value {text!r} is not an integer")

    def _load(self) -> int:
        try:
            value = self._parse(self.store.read())
        except CorruptedCounter as exc:
            log.warning(f"{exc.message}. Resetting counter to {self.floor}")
            value = self.floor
        except OSError as exc:
            log.warning(f"PNR counter unreadable ({exc}). Resetting counter to {self.floor}")
            value = self.floor

        if value < self.floor:
            log.warning(f"PNR counter {value} below floor, raising to {self.floor}")
            value = self.floor
        return value

    @property
    def current(self) -> int:
        return self._current

    def next(self) -> str:
        """Issue the next PNR"""
        with self._lock:
            issued = self._current + 1
            self.store.write(issued)
            self._current = issued
        return str(issued)

    def advance_to(self, value: int) -> None:
        """Move the counter forward to at least ``value``; never moves it back"""
        with self._lock:
            if value > self._current:
                self.store.write(value)
                self._current = value
