"""
repositories.py — Persistence Interfaces

The transmission layer does not depend on a storage technology. It talks to
these two interfaces:
    - SupplierConfigRepository: keyed store of SupplierConfig records.
    - TransmissionRepository:   append/finalize/query over TransmissionRecord rows.

In-memory implementations live here (default for local runs and tests).
The relational implementation is in `database.py`.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import SupplierConfig, TransmissionRecord


class SupplierConfigRepository(ABC):

    @abstractmethod
    def load(self, supplier_id: str) -> Optional[SupplierConfig]:
        pass

    @abstractmethod
    def save(self, supplier_id: str, config: SupplierConfig) -> None:
        pass


class TransmissionRepository(ABC):

    @abstractmethod
    def insert(self, record: TransmissionRecord) -> None:
        pass

    @abstractmethod
    def finalize(self, record: TransmissionRecord) -> None:
        """
        Replaces the stored pending row with its finalized version (same id).
        Raises KeyError if the row is missing or no longer pending.
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[TransmissionRecord]:
        pass

    @abstractmethod
    def query(
            self,
            order_id: Optional[str] = None,
            supplier_id: Optional[str] = None,
            limit: Optional[int] = None
    ) -> List[TransmissionRecord]:
        """Returns matching records, most recent first."""
        pass


class InMemorySupplierConfigRepository(SupplierConfigRepository):

    def __init__(self):
        self._configs: Dict[str, SupplierConfig] = {}
        self._lock = threading.Lock()

    def load(self, supplier_id: str) -> Optional[SupplierConfig]:
        with self._lock:
            config = self._configs.get(supplier_id)
            return config.model_copy() if config else None

    def save(self, supplier_id: str, config: SupplierConfig) -> None:
        with self._lock:
            self._configs[supplier_id] = config.model_copy()


class InMemoryTransmissionRepository(TransmissionRepository):

    def __init__(self):
        # Insertion order is kept so that equal timestamps still sort newest first.
        self._records: Dict[str, TransmissionRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: TransmissionRecord) -> None:
        with self._lock:
            if record.id in self._records:
                raise KeyError(f"Transmission {record.id} existe déjà")
            self._records[record.id] = record

    def finalize(self, record: TransmissionRecord) -> None:
        with self._lock:
            current = self._records.get(record.id)
            if current is None or current.status.is_terminal:
                raise KeyError(f"Transmission {record.id} introuvable ou déjà finalisée")
            self._records[record.id] = record

    def get(self, record_id: str) -> Optional[TransmissionRecord]:
        with self._lock:
            return self._records.get(record_id)

    def query(self, order_id=None, supplier_id=None, limit=None) -> List[TransmissionRecord]:
        with self._lock:
            rows = [
                r for r in reversed(list(self._records.values()))
                if (order_id is None or r.order_id == order_id)
                and (supplier_id is None or r.supplier_id == supplier_id)
            ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit] if limit is not None else rows
