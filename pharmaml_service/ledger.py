"""
ledger.py — PharmaML Transmission Ledger

Append-only audit log of transmission attempts. Each attempt is written twice:
    1. record_attempt_start → a 'pending' row, before the network call
    2. record_attempt_end   → the same row finalized once to success/error/timeout

The current send state of an order is derived from the log (`has_been_sent`),
never stored as a flag on the order.

A ledger write failure is a business-critical fault: it is logged at CRITICAL
and raised as LedgerWriteError, never swallowed.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from .exceptions import LedgerWriteError, NotFoundError, ValidationError
from .models import SentState, TransmissionRecord, TransmissionStatus
from .repositories import TransmissionRepository

log = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class TransmissionLedger:
    """Append-only store of TransmissionRecord rows on top of a TransmissionRepository."""

    def __init__(self, repository: TransmissionRepository):
        self.repository = repository

    def record_attempt_start(
            self,
            order_id: str,
            supplier_id: str,
            request_xml: Optional[str],
            order_number: Optional[str] = None
    ) -> str:
        """
        Inserts the 'pending' row of a new attempt.

        Returns:
            str: The id of the new record.
        Raises:
            LedgerWriteError: If the row could not be written. No network call may follow.
        """
        record = TransmissionRecord(
            id=str(uuid.uuid4()),
            order_id=order_id,
            supplier_id=supplier_id,
            request_xml=request_xml,
            status=TransmissionStatus.PENDING,
            order_number=order_number,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.repository.insert(record)
        except Exception as e:
            log.critical(f"[Order: {order_id}] ÉCHEC D'ÉCRITURE DU JOURNAL PharmaML (début de tentative): {e}")
            raise LedgerWriteError(
                message="Impossible d'enregistrer la tentative de transmission",
                detail={'order_id': order_id, 'supplier_id': supplier_id},
            ) from e
        log.info(f"[Order: {order_id}] Tentative PharmaML {record.id} enregistrée (pending).")
        return record.id

    def record_attempt_end(
            self,
            record_id: str,
            status: TransmissionStatus,
            response_xml: Optional[str] = None,
            error_code: Optional[str] = None,
            message: Optional[str] = None,
            supplier_order_number: Optional[str] = None,
            duration_ms: Optional[int] = None
    ) -> TransmissionRecord:
        """
        Finalizes a pending row. A record is finalized exactly once.

        Raises:
            ValidationError: If `status` is not terminal.
            LedgerWriteError: If the row is missing, already finalized or cannot be written.
        """
        status = TransmissionStatus(status)
        if not status.is_terminal:
            raise ValidationError(
                message="Une tentative ne peut être finalisée qu'avec un statut terminal",
                code='INVALID_TERMINAL_STATUS',
                detail={'record_id': record_id, 'status': status.value},
            )

        try:
            current = self.repository.get(record_id)
        except Exception as e:
            log.critical(f"[Transmission: {record_id}] ÉCHEC DE LECTURE DU JOURNAL PharmaML: {e}")
            raise LedgerWriteError(
                message="Impossible de finaliser la tentative de transmission",
                detail={'record_id': record_id},
            ) from e

        if current is None or current.status.is_terminal:
            reason = "introuvable" if current is None else f"déjà finalisée ({current.status.value})"
            log.critical(f"[Transmission: {record_id}] Finalisation refusée: tentative {reason}.")
            raise LedgerWriteError(
                message=f"Tentative de transmission {reason}",
                code='LEDGER_INVALID_TRANSITION',
                detail={'record_id': record_id},
            )

        final = current.model_copy(update={
            "status": status,
            "response_xml": response_xml,
            "error_code": error_code,
            "message": message,
            "supplier_order_number": supplier_order_number,
            "duration_ms": duration_ms,
            "finalized_at": datetime.now(timezone.utc),
        })
        try:
            self.repository.finalize(final)
        except Exception as e:
            log.critical(
                f"[Order: {current.order_id}] ÉCHEC D'ÉCRITURE DU JOURNAL PharmaML (fin de tentative "
                f"{record_id}, statut {status.value}): {e}. ACTION MANUELLE REQUISE!"
            )
            raise LedgerWriteError(
                message="Impossible de finaliser la tentative de transmission",
                detail={'record_id': record_id, 'order_id': current.order_id, 'status': status.value},
            ) from e

        log.info(f"[Order: {current.order_id}] Tentative PharmaML {record_id} finalisée: {status.value}.")
        return final

    def has_been_sent(self, order_id: str) -> SentState:
        """
        Idempotency guard. `sent` is True iff a finalized attempt succeeded;
        later failures do not reset it. Pending rows are ignored.
        """
        finalized = [r for r in self.repository.query(order_id=order_id) if r.status.is_terminal]
        if not finalized:
            return SentState(sent=False, last_status=None)
        return SentState(
            sent=any(r.status is TransmissionStatus.SUCCESS for r in finalized),
            last_status=finalized[0].status,
        )

    def history(
            self,
            order_id: Optional[str] = None,
            supplier_id: Optional[str] = None,
            limit: int = DEFAULT_HISTORY_LIMIT
    ) -> List[TransmissionRecord]:
        """Attempts for an order and/or a supplier, most recent first."""
        if order_id is None and supplier_id is None:
            raise ValidationError(
                message="order_id ou supplier_id est requis",
                code='HISTORY_FILTER_REQUIRED',
            )
        if limit <= 0:
            raise ValidationError(message="limit doit être positif", code='INVALID_LIMIT')
        return self.repository.query(order_id=order_id, supplier_id=supplier_id, limit=limit)

    def get(self, record_id: str) -> TransmissionRecord:
        record = self.repository.get(record_id)
        if record is None:
            raise NotFoundError(
                message="Transmission introuvable",
                code='TRANSMISSION_NOT_FOUND',
                detail={'record_id': record_id},
            )
        return record
