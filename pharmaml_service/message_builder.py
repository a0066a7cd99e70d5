"""
message_builder.py — PharmaML Order Message Construction

Turns an Order plus the supplier's SupplierConfig into the XML document posted
to the wholesaler.

Country dialects (element names, namespace, header secret, price precision) are
plain data in the DIALECTS table. `build()` picks the dialect from the
configured country and runs one serializer for all of them.

The caller guarantees a valid order (non-empty lines) and a configured
supplier; `build()` itself does not fail on such input.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional
from xml.etree import ElementTree

from .countries import DEFAULT_DISPATCHER_CODE, DEFAULT_SECRET_KEY, dialect_for
from .models import Order, OrderMessage, SupplierConfig

MESSAGE_TYPE_ORDER = "COMMANDE"
MESSAGE_TYPE_TEST = "TEST"
SECRET_HEADER = "X-PharmaML-Secret"

_INVALID_XML_CHARS = re.compile(r"[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


@dataclass(frozen=True)
class Dialect:
    """
    Formatting strategy for one PharmaML dialect.

    Attributes:
        name: Key in DIALECTS.
        version: Value of the root 'version' attribute.
        namespace: Default XML namespace, or None.
        tags: Logical field name -> element name.
        embed_secret: Secret goes in the header element; otherwise it is sent
            as the SECRET_HEADER HTTP header.
        price_decimals: Number of decimals of prices on the wire.
    """
    name: str
    version: str
    tags: Dict[str, str]
    namespace: Optional[str] = None
    embed_secret: bool = True
    price_decimals: int = 2
    root: str = "PharmaML"
    line_number_attribute: str = "numero"


DIALECTS = {
    "pharmaml-1.0": Dialect(
        name="pharmaml-1.0",
        version="1.0",
        tags={
            "header": "Header",
            "dispatcher_code": "CodeRepartiteur",
            "dispatcher_id": "IdRepartiteur",
            "secret_key": "CleSecrete",
            "officine_id": "IdOfficine",
            "timestamp": "DateHeure",
            "message_type": "TypeMessage",
            "order": "Commande",
            "order_number": "NumeroCommande",
            "order_date": "DateCommande",
            "internal_reference": "ReferenceInterne",
            "lines": "Lignes",
            "line": "Ligne",
            "product_code": "CodeCIP",
            "label": "Libelle",
            "quantity": "Quantite",
            "unit_price": "PrixUnitaire",
        },
    ),
    "pharmaml-1.1-ns": Dialect(
        name="pharmaml-1.1-ns",
        version="1.1",
        namespace="urn:pharmaml:commande:1.1",
        embed_secret=False,
        price_decimals=0,
        tags={
            "header": "Entete",
            "dispatcher_code": "CodeRepartiteur",
            "dispatcher_id": "IdRepartiteur",
            "secret_key": "CleSecrete",
            "officine_id": "IdOfficine",
            "timestamp": "Horodatage",
            "message_type": "TypeMessage",
            "order": "Commande",
            "order_number": "NumeroCommande",
            "order_date": "DateCommande",
            "internal_reference": "ReferenceInterne",
            "lines": "Lignes",
            "line": "Ligne",
            "product_code": "CodeProduit",
            "label": "Designation",
            "quantity": "QuantiteCommandee",
            "unit_price": "PrixAchatUnitaire",
        },
    ),
}

DEFAULT_DIALECT = DIALECTS["pharmaml-1.0"]


def select_dialect(config: SupplierConfig) -> Dialect:
    return DIALECTS.get(dialect_for(config.country_code), DEFAULT_DIALECT)


def order_number_for(order: Order) -> str:
    """The order's own reference, or CMD-<year>-<last 6 chars of the id>."""
    if order.reference:
        return order.reference
    return f"CMD-{order.created_at.year}-{order.id[-6:].upper()}"


def format_quantity(quantity: int) -> str:
    return str(int(quantity))


def format_price(price: Decimal, decimals: int) -> str:
    """Fixed-point rendering at the dialect precision, no float round-trip."""
    exponent = Decimal(1).scaleb(-decimals)
    return format(Decimal(price).quantize(exponent, rounding=ROUND_HALF_UP), "f")


def xml_safe(text: str) -> str:
    """Drops the characters XML 1.0 does not allow (control characters, lone surrogates, U+FFFE/U+FFFF)."""
    return _INVALID_XML_CHARS.sub("", text)


def _sub(parent: ElementTree.Element, tag: str, text) -> ElementTree.Element:
    elem = ElementTree.SubElement(parent, tag)
    elem.text = "" if text is None else xml_safe(str(text))
    return elem


def _root(dialect: Dialect) -> ElementTree.Element:
    root = ElementTree.Element(dialect.root)
    if dialect.namespace:
        root.set("xmlns", dialect.namespace)
    root.set("version", dialect.version)
    return root


def _header(parent, dialect: Dialect, config: SupplierConfig, message_type: str, generated_at: datetime,
            officine_id: Optional[str] = None):
    t = dialect.tags
    header = ElementTree.SubElement(parent, t["header"])
    _sub(header, t["dispatcher_code"], config.dispatcher_code or DEFAULT_DISPATCHER_CODE)
    _sub(header, t["dispatcher_id"], config.dispatcher_id)
    if dialect.embed_secret:
        _sub(header, t["secret_key"], config.secret_key or DEFAULT_SECRET_KEY)
    _sub(header, t["officine_id"], config.officine_id or officine_id)
    _sub(header, t["timestamp"], generated_at.isoformat())
    _sub(header, t["message_type"], message_type)
    return header


def _serialize(root: ElementTree.Element) -> str:
    ElementTree.indent(root, space="  ")
    body = ElementTree.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}'


def transport_headers(config: SupplierConfig) -> Dict[str, str]:
    """HTTP headers the dialect requires in addition to the XML body."""
    headers = {
        "Content-Type": "application/xml; charset=utf-8",
        "Accept": "application/xml, text/xml",
    }
    if not select_dialect(config).embed_secret:
        headers[SECRET_HEADER] = config.secret_key or DEFAULT_SECRET_KEY
    return headers


def build(order: Order, config: SupplierConfig, generated_at: Optional[datetime] = None) -> OrderMessage:
    """
    Builds the PharmaML order message.

    Args:
        order (Order): Validated order with at least one line.
        config (SupplierConfig): Configuration of a configured supplier.
        generated_at (datetime): Header timestamp, defaults to now (UTC).

    Returns:
        OrderMessage: The XML document and the internal order number it carries.
    """
    dialect = select_dialect(config)
    t = dialect.tags
    generated_at = generated_at or datetime.now(timezone.utc)
    order_number = order_number_for(order)

    root = _root(dialect)
    _header(root, dialect, config, MESSAGE_TYPE_ORDER, generated_at, officine_id=order.officine_id)

    commande = ElementTree.SubElement(root, t["order"])
    _sub(commande, t["order_number"], order_number)
    _sub(commande, t["order_date"], order.created_at.date().isoformat())
    _sub(commande, t["internal_reference"], order.id)

    lines = ElementTree.SubElement(commande, t["lines"])
    for index, line in enumerate(order.lines, start=1):
        elem = ElementTree.SubElement(lines, t["line"])
        elem.set(dialect.line_number_attribute, str(index))
        _sub(elem, t["product_code"], line.product_external_code)
        _sub(elem, t["label"], line.label or "")
        _sub(elem, t["quantity"], format_quantity(line.ordered_quantity))
        if line.expected_unit_price is not None:
            _sub(elem, t["unit_price"], format_price(line.expected_unit_price, dialect.price_decimals))

    return OrderMessage(
        order_id=order.id,
        order_number=order_number,
        dialect=dialect.name,
        xml=_serialize(root),
        line_count=len(order.lines),
    )


def build_probe(generated_at: Optional[datetime] = None) -> str:
    """
    Minimal TEST message used by the connection test. Carries no order and no
    credentials.
    """
    dialect = DEFAULT_DIALECT
    t = dialect.tags
    root = _root(dialect)
    header = ElementTree.SubElement(root, t["header"])
    _sub(header, t["timestamp"], (generated_at or datetime.now(timezone.utc)).isoformat())
    _sub(header, t["message_type"], MESSAGE_TYPE_TEST)
    return _serialize(root)
