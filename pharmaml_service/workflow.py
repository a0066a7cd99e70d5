"""
workflow.py — Order Transmission Workflow

This module is the caller side of the transmission layer: the logic the order
workflow runs when a user clicks "send via PharmaML".

Workflow Overview:
1. Idempotency guard: refuse if the ledger already holds a successful transmission
2. Configuration gate: refuse if the supplier is not configured for PharmaML
3. Transmission via TransmissionClient (pending record → POST → finalized record)

Steps 1 and 3 run under a per-order lock so that two concurrent clicks in the
same process cannot both pass the guard. Across processes the race remains and
is mitigated by the UI hiding the send action once a success is on record.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict

from .clients import TransmissionClient
from .exceptions import AlreadyTransmittedError, ConfigurationError
from .ledger import TransmissionLedger
from .models import Order, OutcomeStatus, TransmissionOutcome

log = logging.getLogger(__name__)


class OrderLocks:
    """One asyncio.Lock per order id, created on demand and dropped when idle."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, order_id: str):
        lock = self._locks.setdefault(order_id, asyncio.Lock())
        self._waiters[order_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[order_id] -= 1
            if self._waiters[order_id] == 0:
                del self._waiters[order_id]
                self._locks.pop(order_id, None)

    def is_locked(self, order_id: str) -> bool:
        lock = self._locks.get(order_id)
        return lock is not None and lock.locked()


ORDER_LOCKS = OrderLocks()


async def transmit_order(
        order: Order,
        client: TransmissionClient,
        ledger: TransmissionLedger,
        locks: OrderLocks = ORDER_LOCKS,
        raise_on_not_configured: bool = False
) -> TransmissionOutcome:
    """
    Executes the transmission workflow for a single order.

    Args:
        order (Order): Order from the order workflow (validated, non-empty).
        client (TransmissionClient): Client bound to the supplier store and ledger.
        ledger (TransmissionLedger): Ledger used for the idempotency guard.
        locks (OrderLocks): Per-order locks.
        raise_on_not_configured (bool): Raise ConfigurationError instead of
            returning the not_configured outcome.

    Returns:
        TransmissionOutcome: Result of the attempt.

    Raises:
        AlreadyTransmittedError: If a successful transmission is already on record.
        ConfigurationError: See raise_on_not_configured.
        LedgerWriteError: If the audit ledger cannot be written.
    """
    log_prefix = f"[Order: {order.id}]"
    log.info(f"{log_prefix} Demande de transmission PharmaML au fournisseur {order.supplier_id}.")

    async with locks.hold(order.id):
        state = await asyncio.to_thread(ledger.has_been_sent, order.id)
        if state.sent:
            log.warning(f"{log_prefix} Déjà transmise avec succès. Envoi refusé.")
            raise AlreadyTransmittedError(
                message="Cette commande a déjà été transmise avec succès via PharmaML.",
                detail={'order_id': order.id, 'last_status': state.last_status.value if state.last_status else None},
            )

        outcome = await client.send(order)

    if outcome.status is OutcomeStatus.NOT_CONFIGURED and raise_on_not_configured:
        raise ConfigurationError(
            message=outcome.message,
            detail={'supplier_id': order.supplier_id},
        )

    if outcome.success:
        log.info(f"{log_prefix} Transmission réussie. N° répartiteur: {outcome.supplier_order_number}")
    else:
        log.error(f"{log_prefix} Transmission échouée ({outcome.status.value}, {outcome.error_code}): {outcome.message}")
    return outcome
