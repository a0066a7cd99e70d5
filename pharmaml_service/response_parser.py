"""
response_parser.py — PharmaML Response Classification

Classifies the raw body returned by a wholesaler into a ParsedResult.
The parser is fail-closed: success is only reported for an explicit
acknowledgement carrying an order number.

Rules, in order:
    1. Not XML, empty, or not a PharmaML response root → PROTOCOL_MALFORMED
    2. Explicit rejection (error element, rejected status, SOAP fault)
       → the supplier's own code and message, verbatim
    3. Acknowledgement with an order number → success
    4. Anything else → PROTOCOL_UNKNOWN

Rejections and statuses are only read at response level: anything inside an
acknowledgement or a line (e.g. a refused line of an accepted order) does not
reject the order.

Element names are matched on their local name, namespaces are ignored.
"""

import logging
from typing import Iterable, Iterator, Optional, Union
from xml.etree import ElementTree

from .exceptions import ProtocolError, SupplierRejection
from .models import ParsedResult, TransmissionStatus

log = logging.getLogger(__name__)

RESPONSE_ROOTS = {"PharmaML", "PharmaMLReponse", "Reponse", "Envelope"}
ACK_ELEMENTS = {"AccuseReception", "Acquittement", "Accuse"}
ORDER_NUMBER_ELEMENTS = ("NumeroCommandeRepartiteur", "NumeroCommande")
REJECTION_ELEMENTS = {"Erreur", "Rejet", "Error", "Fault"}
REJECTED_STATUSES = {"REJET", "REJETE", "REFUS", "REFUSE", "ERREUR", "KO"}
CODE_ELEMENTS = ("CodeErreur", "Code", "faultcode")
MESSAGE_ELEMENTS = ("MessageErreur", "Message", "Libelle", "faultstring")
STATUS_ELEMENTS = ("Statut", "Status")
LINE_ELEMENTS = {"Lignes", "Ligne"}


def _local(tag) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.split("}")[-1] if "}" in tag else tag


def _find(elem: ElementTree.Element, names: Iterable[str]) -> Optional[ElementTree.Element]:
    wanted = set(names)
    for child in elem.iter():
        if _local(child.tag) in wanted:
            return child
    return None


def _text(elem: ElementTree.Element, names: Iterable[str]) -> Optional[str]:
    """First non-empty text among the descendants named in `names`, by priority."""
    for name in names:
        found = _find(elem, (name,))
        if found is not None and found.text and found.text.strip():
            return found.text.strip()
    return None


def _response_level(root: ElementTree.Element) -> Iterator[ElementTree.Element]:
    """Root and descendants, without entering acknowledgement or line subtrees."""
    stack = [root]
    while stack:
        elem = stack.pop()
        yield elem
        stack.extend(
            child for child in reversed(list(elem))
            if _local(child.tag) not in ACK_ELEMENTS | LINE_ELEMENTS
        )


def _first(elements: Iterable[ElementTree.Element], names: Iterable[str]) -> Optional[ElementTree.Element]:
    wanted = set(names)
    return next((e for e in elements if _local(e.tag) in wanted), None)


class ResponseParser:
    """Parses wholesaler responses into ParsedResult."""

    def parse(self, raw: Union[bytes, str, None]) -> ParsedResult:
        """
        Args:
            raw (bytes | str): Response body exactly as received.

        Returns:
            ParsedResult: status success or error, never pending/timeout.
        """
        if raw is None or not raw.strip():
            return self._malformed("Réponse vide du serveur PharmaML")

        try:
            root = ElementTree.fromstring(raw)
        except ElementTree.ParseError as e:
            log.warning(f"Réponse PharmaML non XML: {e}")
            return self._malformed(f"Réponse non XML: {e}")

        if _local(root.tag) not in RESPONSE_ROOTS:
            return self._malformed(f"Élément racine inattendu: {_local(root.tag)}")

        rejection = self._rejection(root)
        if rejection is not None:
            return rejection

        ack = _find(root, ACK_ELEMENTS)
        if ack is not None:
            number = _text(ack, ORDER_NUMBER_ELEMENTS)
            if number:
                return ParsedResult(
                    status=TransmissionStatus.SUCCESS,
                    supplier_order_number=number,
                    message=_text(ack, ("Message",)) or f"Commande acceptée par le répartiteur (n° {number})",
                )
            log.warning("Accusé de réception PharmaML sans numéro de commande")

        return ParsedResult(
            status=TransmissionStatus.ERROR,
            error_code=ProtocolError.UNKNOWN,
            message="Réponse PharmaML non reconnue",
        )

    def _rejection(self, root: ElementTree.Element) -> Optional[ParsedResult]:
        top = list(_response_level(root))
        error_elem = _first(top, REJECTION_ELEMENTS)
        if error_elem is not None:
            code = _text(error_elem, CODE_ELEMENTS)
            message = _text(error_elem, MESSAGE_ELEMENTS)
            if message is None and error_elem.text and error_elem.text.strip():
                message = error_elem.text.strip()
        else:
            status_elem = _first(top, STATUS_ELEMENTS)
            status = (status_elem.text or "").strip().upper() if status_elem is not None else ""
            if status not in REJECTED_STATUSES:
                return None
            code = self._top_text(top, CODE_ELEMENTS)
            message = self._top_text(top, MESSAGE_ELEMENTS)

        # An order number sent along with a rejection is kept for the audit trail.
        number = _text(root, ORDER_NUMBER_ELEMENTS[:1])
        if number:
            log.warning(f"Rejet PharmaML accompagné du n° répartiteur {number}")
        return ParsedResult(
            status=TransmissionStatus.ERROR,
            error_code=code or SupplierRejection.code,
            message=message or "Commande rejetée par le répartiteur",
            supplier_order_number=number,
        )

    @staticmethod
    def _top_text(top, names: Iterable[str]) -> Optional[str]:
        for name in names:
            found = _first(top, (name,))
            if found is not None and found.text and found.text.strip():
                return found.text.strip()
        return None

    @staticmethod
    def _malformed(message: str) -> ParsedResult:
        return ParsedResult(
            status=TransmissionStatus.ERROR,
            error_code=ProtocolError.MALFORMED,
            message=message,
        )


def parse(raw: Union[bytes, str, None]) -> ParsedResult:
    return ResponseParser().parse(raw)
