"""
End-to-end transmission tests against the mock wholesaler.

The mock server from mock_services/ runs in-process (httpx.ASGITransport);
the scenario is selected through the officine id of the supplier configuration.
"""
import asyncio

import pytest

from pharmaml_service.clients import TransmissionClient
from pharmaml_service.database import create_sql_repositories
from pharmaml_service.exceptions import AlreadyTransmittedError, ConfigurationError
from pharmaml_service.ledger import TransmissionLedger
from pharmaml_service.models import OutcomeStatus, TransmissionStatus
from pharmaml_service.supplier_config import SupplierConfigStore
from pharmaml_service.workflow import OrderLocks, transmit_order

ORDER_ID = 'a1b2c3d4-0000-4000-8000-00000000abcd'
SUPPLIER_ID = 'SUP-UBIPHARM'


@pytest.fixture
def client(configured_store, ledger, mock_http_client):
    return TransmissionClient(configured_store, ledger, timeout=2.0, http_client=mock_http_client)


def use_scenario(store, config_factory, officine_id):
    store.save(SUPPLIER_ID, config_factory(officine_id=officine_id))


async def test_accepted_order(client, ledger, order_factory, mock_server):
    outcome = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert outcome.status is OutcomeStatus.SUCCESS
    assert outcome.supplier_order_number == 'PM-123'
    assert outcome.order_number == 'CMD-2025-00ABCD'

    history = ledger.history(order_id=ORDER_ID)
    assert len(history) == 1
    assert history[0].status == TransmissionStatus.SUCCESS
    assert history[0].supplier_order_number == 'PM-123'
    assert b'<NumeroCommande>CMD-2025-00ABCD</NumeroCommande>' in mock_server.state.received[0]


async def test_second_send_is_refused(client, ledger, order_factory, mock_server):
    await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    with pytest.raises(AlreadyTransmittedError) as exc_info:
        await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert exc_info.value.detail == {'order_id': ORDER_ID, 'last_status': 'success'}
    assert len(mock_server.state.received) == 1
    assert len(ledger.history(order_id=ORDER_ID)) == 1


async def test_concurrent_sends_transmit_once(client, ledger, order_factory, mock_server):
    locks = OrderLocks()
    results = await asyncio.gather(
        transmit_order(order_factory(), client, ledger, locks=locks),
        transmit_order(order_factory(), client, ledger, locks=locks),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception) and r.success]
    refusals = [r for r in results if isinstance(r, AlreadyTransmittedError)]
    assert len(successes) == 1
    assert len(refusals) == 1
    assert len(mock_server.state.received) == 1


async def test_retry_after_rejection(client, configured_store, config_factory, ledger, order_factory):
    use_scenario(configured_store, config_factory, 'REJECT-201117')
    rejected = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert rejected.status is OutcomeStatus.ERROR
    assert rejected.error_code == 'E042'
    assert 'inconnue du répartiteur' in rejected.message
    assert ledger.has_been_sent(ORDER_ID).sent is False

    use_scenario(configured_store, config_factory, '201117')
    accepted = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert accepted.supplier_order_number == 'PM-123'
    assert [r.status for r in ledger.history(order_id=ORDER_ID)] == [
        TransmissionStatus.SUCCESS, TransmissionStatus.ERROR,
    ]


async def test_timeout(configured_store, config_factory, ledger, order_factory, mock_http_client):
    use_scenario(configured_store, config_factory, 'TIMEOUT-1')
    client = TransmissionClient(configured_store, ledger, timeout=0.3, http_client=mock_http_client)

    outcome = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert outcome.status is OutcomeStatus.TIMEOUT
    state = ledger.has_been_sent(ORDER_ID)
    assert state.sent is False
    assert state.last_status == TransmissionStatus.TIMEOUT


@pytest.mark.parametrize('officine_id, error_code', [
    ('MALFORMED-1', 'PROTOCOL_MALFORMED'),
    ('NOACK-1', 'PROTOCOL_UNKNOWN'),
    ('HTTP500-1', 'PROTOCOL_MALFORMED'),
])
async def test_unusable_responses(client, configured_store, config_factory, ledger, order_factory,
                                  officine_id, error_code):
    use_scenario(configured_store, config_factory, officine_id)

    outcome = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    assert outcome.status is OutcomeStatus.ERROR
    assert outcome.error_code == error_code
    assert ledger.history(order_id=ORDER_ID)[0].response_xml is not None


async def test_not_configured_can_raise(client, configured_store, config_factory, ledger, order_factory,
                                        mock_server):
    configured_store.save(SUPPLIER_ID, config_factory(enabled=False))

    with pytest.raises(ConfigurationError):
        await transmit_order(order_factory(), client, ledger, locks=OrderLocks(), raise_on_not_configured=True)

    assert mock_server.state.received == []
    assert ledger.history(order_id=ORDER_ID) == []


async def test_sql_persistence_end_to_end(config_factory, order_factory, mock_http_client):
    config_repository, transmission_repository = create_sql_repositories('sqlite:///:memory:')
    store = SupplierConfigStore(config_repository)
    ledger = TransmissionLedger(transmission_repository)
    store.save(SUPPLIER_ID, config_factory())
    client = TransmissionClient(store, ledger, timeout=2.0, http_client=mock_http_client)

    outcome = await transmit_order(order_factory(), client, ledger, locks=OrderLocks())

    record = ledger.get(outcome.record_id)
    assert record.status == TransmissionStatus.SUCCESS
    assert record.supplier_order_number == 'PM-123'
    assert '<IdOfficine>201117</IdOfficine>' in record.request_xml
    assert 'PM-123' in record.response_xml
    assert ledger.has_been_sent(ORDER_ID).sent is True
