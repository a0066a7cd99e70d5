"""
exceptions.py — Error Taxonomy for the PharmaML Transmission Layer

Every business error derives from PharmaMLError and carries:
    - code:        machine-readable error code (PHARMAML_CONFIG_INCOMPLETE, TIMEOUT, ...)
    - message:     human-readable description
    - detail:      optional extra information (dict / list / None)
    - http_status: status code used by the API exception handler

Network, timeout, protocol and rejection failures are not raised out of
`TransmissionClient.send`: they end up in the ledger and in the outcome with the
code of the matching class below. Configuration, validation and ledger
failures are raised.
"""


class PharmaMLError(Exception):
    """Base class of all transmission-layer errors."""

    code = 'PHARMAML_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(PharmaMLError):
    """Input rejected before anything is persisted or sent."""

    code = 'VALIDATION_ERROR'
    http_status = 400


class NotFoundError(PharmaMLError):
    code = 'NOT_FOUND'
    http_status = 404


class ConfigurationError(PharmaMLError):
    """Supplier not enabled for PharmaML or required fields missing. Nothing is persisted."""

    code = 'CONFIGURATION_ERROR'
    http_status = 422


class AlreadyTransmittedError(PharmaMLError):
    """The order already has a successful transmission on record."""

    code = 'ALREADY_TRANSMITTED'
    http_status = 409


class NetworkError(PharmaMLError):
    """DNS, connection or TLS failure. Recorded as status=error."""

    code = 'NETWORK_ERROR'
    http_status = 502


class TransmissionTimeoutError(PharmaMLError):
    """No response within the bounded window. Recorded as status=timeout."""

    code = 'TIMEOUT'
    http_status = 504


class ProtocolError(PharmaMLError):
    """Response received but malformed or not recognised."""

    code = 'PROTOCOL_UNKNOWN'
    http_status = 502

    MALFORMED = 'PROTOCOL_MALFORMED'
    UNKNOWN = 'PROTOCOL_UNKNOWN'


class SupplierRejection(PharmaMLError):
    """The wholesaler explicitly rejected the order. Its own code is kept verbatim."""

    code = 'SUPPLIER_REJECTED'
    http_status = 502


class LedgerWriteError(PharmaMLError):
    """
    The audit ledger could not be written. Losing the record of a real
    wholesaler transaction is a business-critical fault: always raised, never swallowed.
    """

    code = 'LEDGER_WRITE_FAILED'
    http_status = 500
