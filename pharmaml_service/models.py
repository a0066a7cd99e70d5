"""
models.py — Data Models for PharmaML Transmission

This module defines the data structures exchanged between the order workflow,
the supplier configuration screens and the transmission layer.
It uses Pydantic models to ensure type safety and automatic validation of incoming data.

Models:
    - SupplierConfig: PharmaML settings of one supplier for the pharmacy.
    - CountryTemplate: Bundled default parameters for a country.
    - OrderLine / Order: The purchase order handed over by the order workflow.
    - OrderMessage: The XML document built for one transmission attempt.
    - TransmissionRecord: One ledger entry (one attempt).
    - ParsedResult, TransmissionOutcome, SentState, ConnectionTestResult: results.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransmissionStatus(str, Enum):
    """Status of a ledger entry. PENDING is replaced exactly once by a terminal value."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not TransmissionStatus.PENDING


class OutcomeStatus(str, Enum):
    """Caller-facing result of a send attempt."""
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    NOT_CONFIGURED = "not_configured"


class SupplierConfig(BaseModel):
    """
    PharmaML configuration of a supplier (répartiteur) for the pharmacy.

    Attributes:
        enabled (bool): Whether orders to this supplier go out over PharmaML.
        endpoint_url (str): URL of the wholesaler's PharmaML server.
        dispatcher_code (str): Répartiteur code (e.g. '28').
        dispatcher_id (str): Répartiteur identifier (e.g. 'BZV04').
        secret_key (str): Shared secret embedded in the message header.
        officine_id (str): The pharmacy's identifier at the wholesaler.
        country_code (str): ISO country code used to pick defaults and dialect.

    No validation happens here on purpose: invalid records must still load so
    that `SupplierConfigStore.is_configured` can report them as not configured.
    """
    enabled: bool = False
    endpoint_url: Optional[str] = None
    dispatcher_code: Optional[str] = None
    dispatcher_id: Optional[str] = None
    secret_key: Optional[str] = None
    officine_id: Optional[str] = None
    country_code: Optional[str] = None


class CountryTemplate(BaseModel):
    """Default protocol parameters bundled for one country."""
    model_config = ConfigDict(frozen=True)

    country_code: str
    label: str
    default_endpoint_url: str
    default_dispatcher_code: str
    dialect: str = "pharmaml-1.0"


class OrderLine(BaseModel):
    """
    A single product line of a purchase order.

    Attributes:
        product_external_code (str): Code known to the wholesaler (CIP code).
        label (str): Product label, informative only.
        ordered_quantity (int): Quantity to order. Must be greater than zero.
        expected_unit_price (Decimal): Expected purchase price per unit, if known.
    """
    product_external_code: str = Field(..., min_length=1)
    label: Optional[str] = None
    ordered_quantity: int = Field(..., gt=0)
    expected_unit_price: Optional[Decimal] = Field(None, ge=0)


class Order(BaseModel):
    """
    A purchase order as exposed by the order workflow.

    Attributes:
        id (str): Internal order identifier.
        supplier_id (str): Supplier the order is addressed to.
        officine_id (str): Pharmacy identifier; the supplier config value wins when set.
        created_at (datetime): Creation date of the order.
        reference (str): Human-readable order number, generated when absent.
        lines (List[OrderLine]): Ordered, non-empty list of lines.
    """
    id: str = Field(..., min_length=1)
    supplier_id: str = Field(..., min_length=1)
    officine_id: Optional[str] = None
    created_at: datetime
    reference: Optional[str] = None
    lines: List[OrderLine] = Field(..., min_length=1)


class OrderMessage(BaseModel):
    """Outbound XML document for one transmission attempt. Never persisted by itself."""
    order_id: str
    order_number: str
    dialect: str
    xml: str
    line_count: int


class TransmissionRecord(BaseModel):
    """
    One transmission attempt in the ledger. Immutable: finalizing a pending
    record produces a new instance that replaces the stored one.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    order_id: str
    supplier_id: str
    request_xml: Optional[str] = None
    response_xml: Optional[str] = None
    status: TransmissionStatus = TransmissionStatus.PENDING
    error_code: Optional[str] = None
    message: Optional[str] = None
    supplier_order_number: Optional[str] = None
    order_number: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: datetime
    finalized_at: Optional[datetime] = None


class ParsedResult(BaseModel):
    """Classification of a wholesaler response body."""
    status: TransmissionStatus
    supplier_order_number: Optional[str] = None
    message: str
    error_code: Optional[str] = None


class TransmissionOutcome(BaseModel):
    """Result returned to the caller of `TransmissionClient.send`."""
    status: OutcomeStatus
    message: str
    error_code: Optional[str] = None
    supplier_order_number: Optional[str] = None
    order_number: Optional[str] = None
    record_id: Optional[str] = None
    duration_ms: Optional[int] = None
    line_count: int = 0

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


class SentState(BaseModel):
    """Answer of the idempotency guard for one order."""
    sent: bool
    last_status: Optional[TransmissionStatus] = None


class ConnectionTestResult(BaseModel):
    """Result of a configuration-time connectivity probe."""
    success: bool
    message: str
    duration_ms: Optional[int] = None
    http_status: Optional[int] = None
