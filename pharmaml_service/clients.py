"""
This module provides the communication clients for PharmaML wholesaler servers:
- TransmissionClient: submits an order (HTTP POST of the XML message)
- ConnectionTester:   configuration-time reachability probe
Each class encapsulates its protocol logic, timeout handling and error classification.
"""

import asyncio
import logging
import os
import socket
import ssl
import time
from typing import Optional

import httpx

from .exceptions import ConfigurationError, TransmissionTimeoutError
from .ledger import TransmissionLedger
from .message_builder import build, build_probe, transport_headers
from .models import (
    ConnectionTestResult,
    Order,
    OutcomeStatus,
    TransmissionOutcome,
    TransmissionStatus,
)
from .response_parser import ResponseParser
from .supplier_config import SupplierConfigStore

# Timeouts (normalement via variables d'environnement)
PHARMAML_TIMEOUT_SECONDS = float(os.environ.get("PHARMAML_TIMEOUT_SECONDS", "30"))
PHARMAML_TEST_TIMEOUT_SECONDS = float(os.environ.get("PHARMAML_TEST_TIMEOUT_SECONDS", "10"))
CONNECT_TIMEOUT_SECONDS = 10.0

log = logging.getLogger(__name__)

_TLS_MARKERS = ("ssl", "tls", "certificate")
_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo",
                "name resolution", "no address associated")


def _causes(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def classify_transport_error(exc: Exception) -> str:
    """
    Maps an httpx transport failure to the error code stored in the ledger.

    Returns:
        str: NETWORK_INVALID_URL, NETWORK_TLS_ERROR, NETWORK_DNS_ERROR,
             NETWORK_CONNECT_ERROR, NETWORK_PROTOCOL_ERROR or NETWORK_ERROR.
    """
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return "NETWORK_INVALID_URL"
    if isinstance(exc, httpx.ConnectError):
        chain = list(_causes(exc))
        text = " ".join(str(e) for e in chain).lower()
        if any(isinstance(e, ssl.SSLError) for e in chain) or any(m in text for m in _TLS_MARKERS):
            return "NETWORK_TLS_ERROR"
        if any(isinstance(e, socket.gaierror) for e in chain) or any(m in text for m in _DNS_MARKERS):
            return "NETWORK_DNS_ERROR"
        return "NETWORK_CONNECT_ERROR"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.LocalProtocolError)):
        return "NETWORK_PROTOCOL_ERROR"
    return "NETWORK_ERROR"


async def post_xml(
        http_client: Optional[httpx.AsyncClient],
        url: str,
        content: str,
        headers: dict,
        timeout: float
) -> httpx.Response:
    """
    POSTs an XML body with a hard deadline.

    httpx enforces per-phase timeouts; asyncio.wait_for bounds the whole call so
    a hung endpoint can never stall the caller beyond `timeout` seconds.

    Raises:
        httpx.TimeoutException / asyncio.TimeoutError: On timeout.
        httpx.HTTPError, httpx.InvalidURL: On transport failures.
    """
    client = http_client or httpx.AsyncClient()
    timeout_config = httpx.Timeout(timeout, connect=min(timeout, CONNECT_TIMEOUT_SECONDS))
    try:
        return await asyncio.wait_for(
            client.post(url, content=content.encode("utf-8"), headers=headers, timeout=timeout_config),
            timeout=timeout,
        )
    finally:
        if client is not http_client:
            await client.aclose()


# --- Transmission Client (HTTP/XML) ---
class TransmissionClient:
    """
    Client for the wholesalers' PharmaML servers.
    Builds the order message, records the attempt in the ledger and performs the POST.
    Never retries on its own: a retry against a stateful wholesaler endpoint could
    create the order twice on their side.
    """
    def __init__(
            self,
            store: SupplierConfigStore,
            ledger: TransmissionLedger,
            timeout: Optional[float] = None,
            http_client: Optional[httpx.AsyncClient] = None,
            parser: Optional[ResponseParser] = None
    ):
        """
        Args:
            store (SupplierConfigStore): Source of the supplier configuration.
            ledger (TransmissionLedger): Audit log of the attempts.
            timeout (float): Overall deadline in seconds (default PHARMAML_TIMEOUT_SECONDS).
            http_client (httpx.AsyncClient): Shared client; a short-lived one is used when None.
            parser (ResponseParser): Response classifier.
        """
        self.store = store
        self.ledger = ledger
        self.timeout = timeout if timeout is not None else PHARMAML_TIMEOUT_SECONDS
        self.http_client = http_client
        self.parser = parser or ResponseParser()

    async def send(self, order: Order, supplier_id: Optional[str] = None) -> TransmissionOutcome:
        """
        Submits an order to the supplier's PharmaML endpoint.

        Args:
            order (Order): Validated order (at least one line).
            supplier_id (str): Supplier to send to, defaults to order.supplier_id.
        Returns:
            TransmissionOutcome: success, error, timeout or not_configured.
        Raises:
            LedgerWriteError: If the audit ledger cannot be written.
            asyncio.CancelledError: If the caller cancels; the attempt is finalized first.
        """
        supplier_id = supplier_id or order.supplier_id
        log_prefix = f"[Order: {order.id}]"

        # Store and ledger are synchronous (SQLAlchemy); they run in worker threads.
        config = await asyncio.to_thread(self.store.configured, supplier_id)
        if config is None:
            log.warning(f"{log_prefix} PharmaML non configuré pour le fournisseur {supplier_id}. Aucun envoi.")
            return TransmissionOutcome(
                status=OutcomeStatus.NOT_CONFIGURED,
                error_code=ConfigurationError.code,
                message="PharmaML non activé ou configuration incomplète pour ce fournisseur",
                line_count=len(order.lines),
            )

        message = build(order, config)
        log.info(f"{log_prefix} Message PharmaML {message.order_number} généré ({message.line_count} lignes, {message.dialect}).")

        record_id = await asyncio.to_thread(
            self.ledger.record_attempt_start, order.id, supplier_id, message.xml, message.order_number
        )

        async def finish(status, message_text, error_code=None, response_xml=None, supplier_order_number=None):
            duration_ms = int((time.monotonic() - start) * 1000)
            await asyncio.to_thread(
                self.ledger.record_attempt_end,
                record_id,
                status=status,
                response_xml=response_xml,
                error_code=error_code,
                message=message_text,
                supplier_order_number=supplier_order_number,
                duration_ms=duration_ms,
            )
            return TransmissionOutcome(
                status=OutcomeStatus(status.value),
                message=message_text,
                error_code=error_code,
                supplier_order_number=supplier_order_number,
                order_number=message.order_number,
                record_id=record_id,
                duration_ms=duration_ms,
                line_count=message.line_count,
            )

        start = time.monotonic()
        try:
            response = await post_xml(
                self.http_client, config.endpoint_url, message.xml, transport_headers(config), self.timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            log.error(f"{log_prefix} Timeout PharmaML après {self.timeout}s. Statut de la commande inconnu côté répartiteur.")
            return await finish(
                TransmissionStatus.TIMEOUT,
                f"Délai d'attente dépassé ({self.timeout:g}s)",
                error_code=TransmissionTimeoutError.code,
            )
        except asyncio.CancelledError:
            log.warning(f"{log_prefix} Transmission PharmaML annulée par l'appelant.")
            await finish(TransmissionStatus.ERROR, "Transmission annulée avant réponse du serveur", error_code="CANCELLED")
            raise
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error_code = classify_transport_error(e)
            log.error(f"{log_prefix} Erreur de connexion PharmaML ({error_code}): {e}")
            return await finish(TransmissionStatus.ERROR, f"Erreur de connexion: {e}", error_code=error_code)
        except Exception as e:
            log.critical(f"{log_prefix} Erreur inattendue pendant la transmission PharmaML: {e}", exc_info=True)
            await finish(TransmissionStatus.ERROR, f"Erreur interne: {e}", error_code="INTERNAL_ERROR")
            raise

        parsed = self.parser.parse(response.content)
        text = parsed.message
        if parsed.error_code and parsed.error_code.startswith("PROTOCOL_") and response.is_error:
            text = f"{text} (HTTP {response.status_code})"
        log.info(
            f"{log_prefix} Réponse PharmaML: HTTP {response.status_code}, statut={parsed.status.value}, "
            f"code={parsed.error_code}, n° répartiteur={parsed.supplier_order_number}"
        )
        return await finish(
            parsed.status,
            text,
            error_code=parsed.error_code,
            response_xml=response.text,
            supplier_order_number=parsed.supplier_order_number,
        )


# --- Connection Tester ---
class ConnectionTester:
    """
    Configuration-time diagnostic: checks that a PharmaML endpoint answers.
    Sends a TEST message without order or credentials and writes nothing.
    """
    def __init__(self, timeout: Optional[float] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout if timeout is not None else PHARMAML_TEST_TIMEOUT_SECONDS
        self.http_client = http_client

    async def test(self, endpoint_url: Optional[str]) -> ConnectionTestResult:
        """
        Probes an endpoint. Any HTTP answer below 500 counts as reachable.

        Args:
            endpoint_url (str): URL of the PharmaML server.
        Returns:
            ConnectionTestResult: success flag and a human-readable message.
        """
        if not endpoint_url or not endpoint_url.strip():
            return ConnectionTestResult(success=False, message="L'URL du serveur PharmaML est requise")
        endpoint_url = endpoint_url.strip()

        headers = {"Content-Type": "application/xml; charset=utf-8", "Accept": "application/xml, text/xml"}
        start = time.monotonic()
        try:
            response = await post_xml(self.http_client, endpoint_url, build_probe(), headers, self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            log.warning(f"Test PharmaML {endpoint_url}: délai dépassé.")
            return ConnectionTestResult(
                success=False,
                message=f"Délai d'attente dépassé ({self.timeout:g}s)",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error_code = classify_transport_error(e)
            log.warning(f"Test PharmaML {endpoint_url}: {error_code} {e}")
            return ConnectionTestResult(
                success=False,
                message=f"Connexion impossible ({error_code}): {e}",
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        if response.status_code >= 500:
            log.warning(f"Test PharmaML {endpoint_url}: HTTP {response.status_code}.")
            return ConnectionTestResult(
                success=False,
                message=f"Le serveur PharmaML répond avec une erreur (HTTP {response.status_code})",
                duration_ms=duration_ms,
                http_status=response.status_code,
            )
        log.info(f"Test PharmaML {endpoint_url}: joignable (HTTP {response.status_code}, {duration_ms} ms).")
        return ConnectionTestResult(
            success=True,
            message=f"Serveur PharmaML joignable (HTTP {response.status_code}, {duration_ms} ms)",
            duration_ms=duration_ms,
            http_status=response.status_code,
        )
