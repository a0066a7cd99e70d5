"""
main.py — FastAPI Entry Point for the PharmaML Service

This module provides the REST API used by the pharmacy dashboard for PharmaML
ordering. It sits between the order workflow / configuration screens and the
transmission layer.

Responsibilities:
    • Read and save the PharmaML configuration of a supplier, apply country defaults
    • Test the connection to a PharmaML server
    • Transmit an order and report its send state
    • Expose the transmission history and raw XML for audit
    • Provide system health information
"""

import os
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import countries
from .clients import ConnectionTester, TransmissionClient
from .exceptions import NotFoundError, PharmaMLError, ValidationError
from .ledger import DEFAULT_HISTORY_LIMIT, TransmissionLedger
from .logging_config import get_logger, setup_logging
from .models import (
    ConnectionTestResult,
    CountryTemplate,
    Order,
    SentState,
    SupplierConfig,
    TransmissionOutcome,
    TransmissionRecord,
)
from .repositories import (
    InMemorySupplierConfigRepository,
    InMemoryTransmissionRepository,
    SupplierConfigRepository,
    TransmissionRepository,
)
from .supplier_config import SupplierConfigStore, missing_fields
from .workflow import transmit_order

PHARMAML_DATABASE_URL = os.environ.get("PHARMAML_DATABASE_URL")

log = get_logger(__name__)


class ConnectionTestRequest(BaseModel):
    endpoint_url: Optional[str] = None


class ConfigStatus(BaseModel):
    configured: bool
    enabled: bool
    missing_fields: List[str]


def configure(
        app: FastAPI,
        supplier_repository: SupplierConfigRepository,
        transmission_repository: TransmissionRepository,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        test_timeout: Optional[float] = None
):
    """
    Wires the transmission layer onto the application state.
    Called at startup with the default repositories, or by tests beforehand.
    """
    store = SupplierConfigStore(supplier_repository)
    ledger = TransmissionLedger(transmission_repository)
    app.state.store = store
    app.state.ledger = ledger
    app.state.client = TransmissionClient(store, ledger, timeout=timeout, http_client=http_client)
    app.state.tester = ConnectionTester(timeout=test_timeout, http_client=http_client)


def default_repositories():
    if PHARMAML_DATABASE_URL:
        from .database import create_sql_repositories
        log.info("Persistance PharmaML: base de données relationnelle.")
        return create_sql_repositories(PHARMAML_DATABASE_URL)
    log.warning("PHARMAML_DATABASE_URL non défini: journal PharmaML en mémoire (non persistant).")
    return InMemorySupplierConfigRepository(), InMemoryTransmissionRepository()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: wires default components unless they were configured beforehand.
    Shutdown: closes the shared HTTP client owned by the application.
    """
    log.info("Service PharmaML démarre...")
    owned_client = None
    if getattr(app.state, "ledger", None) is None:
        owned_client = httpx.AsyncClient()
        configure(app, *default_repositories(), http_client=owned_client)
    yield
    if owned_client is not None:
        await owned_client.aclose()
    log.info("Service PharmaML arrêté.")


# Initialization
setup_logging()
app = FastAPI(title="PharmaML Transmission Service", lifespan=lifespan)


@app.exception_handler(PharmaMLError)
async def pharmaml_error_handler(request: Request, exc: PharmaMLError):
    """
    Unified error response:
    {"type": "error", "code": "...", "message": "...", "detail": {...}}
    """
    body = {'type': 'error', 'code': exc.code, 'message': exc.message}
    if exc.detail is not None:
        body['detail'] = exc.detail
    return JSONResponse(body, status_code=exc.http_status)


# --- Countries ---
@app.get("/v1/pharmaml/countries", response_model=List[CountryTemplate])
def list_countries():
    return countries.available_countries()


@app.get("/v1/pharmaml/countries/{country_code}", response_model=CountryTemplate)
def get_country(country_code: str):
    template = countries.lookup(country_code)
    if template is None:
        raise NotFoundError(message=f"Pays PharmaML inconnu: {country_code}", code='COUNTRY_NOT_FOUND')
    return template


# --- Supplier configuration ---
@app.get("/v1/suppliers/{supplier_id}/pharmaml-config", response_model=SupplierConfig)
def get_supplier_config(supplier_id: str, request: Request):
    """Returns the stored configuration, or an empty disabled one if none exists yet."""
    return request.app.state.store.get(supplier_id) or SupplierConfig()


@app.put("/v1/suppliers/{supplier_id}/pharmaml-config", response_model=SupplierConfig)
def save_supplier_config(supplier_id: str, config: SupplierConfig, request: Request):
    """
    Saves the configuration. Returns 400 PHARMAML_CONFIG_INCOMPLETE when enabled
    without URL, répartiteur id or officine id.
    """
    return request.app.state.store.save(supplier_id, config)


@app.post("/v1/suppliers/{supplier_id}/pharmaml-config/country/{country_code}", response_model=SupplierConfig)
def apply_country_defaults(supplier_id: str, country_code: str, request: Request):
    """Pre-fills URL and répartiteur code from the country. Not saved."""
    return request.app.state.store.apply_country(supplier_id, country_code)


@app.get("/v1/suppliers/{supplier_id}/pharmaml-config/status", response_model=ConfigStatus)
def supplier_config_status(supplier_id: str, request: Request):
    """Used by the UI to decide whether to show the PharmaML send action."""
    store: SupplierConfigStore = request.app.state.store
    config = store.get(supplier_id) or SupplierConfig()
    return ConfigStatus(
        configured=store.is_configured(supplier_id),
        enabled=config.enabled,
        missing_fields=missing_fields(config),
    )


@app.post("/v1/pharmaml/test-connection", response_model=ConnectionTestResult)
async def test_connection(payload: ConnectionTestRequest, request: Request):
    return await request.app.state.tester.test(payload.endpoint_url)


# --- Transmission ---
@app.post("/v1/orders/{order_id}/pharmaml-transmissions", response_model=TransmissionOutcome)
async def submit_transmission(order_id: str, order: Order, request: Request):
    """
    Transmits an order to its supplier via PharmaML and waits for the outcome.

    Returns:
        TransmissionOutcome: status success / error / timeout / not_configured.

    Raises:
        AlreadyTransmittedError (409): A successful transmission is already on record.
        LedgerWriteError (500): The audit ledger could not be written.
    """
    if order.id != order_id:
        raise ValidationError(
            message="L'identifiant de commande du chemin et du corps diffèrent",
            code='ORDER_ID_MISMATCH',
            detail={'path': order_id, 'body': order.id},
        )
    log.info(f"[Order: {order_id}] Transmission PharmaML demandée via API.")
    return await transmit_order(order, request.app.state.client, request.app.state.ledger)


@app.get("/v1/orders/{order_id}/pharmaml-status", response_model=SentState)
def order_transmission_status(order_id: str, request: Request):
    return request.app.state.ledger.has_been_sent(order_id)


@app.get("/v1/pharmaml/transmissions", response_model=List[TransmissionRecord])
def transmission_history(
        request: Request,
        order_id: Optional[str] = Query(None, alias="orderId"),
        supplier_id: Optional[str] = Query(None, alias="supplierId"),
        limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500)
):
    return request.app.state.ledger.history(order_id=order_id, supplier_id=supplier_id, limit=limit)


@app.get("/v1/pharmaml/transmissions/{record_id}", response_model=TransmissionRecord)
def transmission_detail(record_id: str, request: Request):
    """Audit drill-down, includes the raw request and response XML."""
    return request.app.state.ledger.get(record_id)


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint for monitoring systems and container orchestrators.
    """
    return {"status": "ok"}
