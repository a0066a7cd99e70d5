"""Unit tests for the error taxonomy."""
import pytest

from pharmaml_service.exceptions import (
    AlreadyTransmittedError,
    ConfigurationError,
    LedgerWriteError,
    NotFoundError,
    PharmaMLError,
    ProtocolError,
    ValidationError,
)


@pytest.mark.parametrize('cls, code, http_status', [
    (ValidationError, 'VALIDATION_ERROR', 400),
    (NotFoundError, 'NOT_FOUND', 404),
    (ConfigurationError, 'CONFIGURATION_ERROR', 422),
    (AlreadyTransmittedError, 'ALREADY_TRANSMITTED', 409),
    (LedgerWriteError, 'LEDGER_WRITE_FAILED', 500),
])
def test_defaults(cls, code, http_status):
    exc = cls('message')
    assert isinstance(exc, PharmaMLError)
    assert exc.code == code
    assert exc.http_status == http_status
    assert exc.detail is None
    assert str(exc) == 'message'


def test_overrides_do_not_leak_to_class():
    exc = ValidationError('incomplet', code='PHARMAML_CONFIG_INCOMPLETE', detail={'missing_fields': ['officine_id']})
    assert exc.code == 'PHARMAML_CONFIG_INCOMPLETE'
    assert exc.detail == {'missing_fields': ['officine_id']}
    assert ValidationError.code == 'VALIDATION_ERROR'


def test_protocol_codes():
    assert ProtocolError.MALFORMED == 'PROTOCOL_MALFORMED'
    assert ProtocolError.UNKNOWN == 'PROTOCOL_UNKNOWN'
