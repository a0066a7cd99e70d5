"""
Unit tests for SupplierConfigStore.

1. save validates the enabled ⇒ complete rule
2. is_configured and configured gate sending (disabled always short-circuits)
3. pre-existing invalid records are never considered configured
4. apply_country pre-fills without saving
"""
import pytest

from pharmaml_service.exceptions import ValidationError
from pharmaml_service.models import SupplierConfig
from pharmaml_service.supplier_config import missing_fields

SUPPLIER = 'SUP-1'


class TestSave:

    def test_unknown_supplier(self, store):
        assert store.get(SUPPLIER) is None
        assert store.is_configured(SUPPLIER) is False

    def test_complete_enabled_config(self, store, config_factory):
        store.save(SUPPLIER, config_factory())
        assert store.get(SUPPLIER).dispatcher_id == 'BZV04'
        assert store.is_configured(SUPPLIER) is True

    def test_enabled_with_empty_officine_is_rejected(self, store, config_factory):
        with pytest.raises(ValidationError) as exc_info:
            store.save(SUPPLIER, config_factory(officine_id=''))

        assert exc_info.value.code == 'PHARMAML_CONFIG_INCOMPLETE'
        assert exc_info.value.detail['missing_fields'] == ['officine_id']
        assert store.get(SUPPLIER) is None

    def test_whitespace_counts_as_empty(self, store, config_factory):
        with pytest.raises(ValidationError) as exc_info:
            store.save(SUPPLIER, config_factory(endpoint_url='   ', dispatcher_id=None))
        assert exc_info.value.detail['missing_fields'] == ['endpoint_url', 'dispatcher_id']

    def test_rejected_save_keeps_previous_record(self, store, config_factory):
        store.save(SUPPLIER, config_factory())
        with pytest.raises(ValidationError):
            store.save(SUPPLIER, config_factory(endpoint_url=None))
        assert store.get(SUPPLIER).endpoint_url is not None
        assert store.is_configured(SUPPLIER) is True

    def test_disabled_partial_config_is_saved(self, store):
        store.save(SUPPLIER, SupplierConfig(enabled=False, dispatcher_code='28'))
        assert store.get(SUPPLIER).dispatcher_code == '28'
        assert store.is_configured(SUPPLIER) is False

    def test_values_are_normalised(self, store, config_factory):
        saved = store.save(SUPPLIER, config_factory(secret_key='  ', country_code='cg', dispatcher_id=' BZV04 '))
        assert saved.secret_key is None
        assert saved.country_code == 'CG'
        assert saved.dispatcher_id == 'BZV04'
        assert store.get(SUPPLIER) == saved

    def test_disabling_is_the_only_way_to_switch_off(self, store, config_factory):
        store.save(SUPPLIER, config_factory())
        store.save(SUPPLIER, config_factory(enabled=False))
        assert store.get(SUPPLIER) is not None
        assert store.is_configured(SUPPLIER) is False


class TestIsConfigured:

    @pytest.mark.parametrize('overrides', [
        {},
        {'endpoint_url': None},
        {'officine_id': ''},
        {'dispatcher_id': None, 'officine_id': None, 'endpoint_url': None},
        {'secret_key': None, 'country_code': None},
    ])
    def test_disabled_always_short_circuits(self, store, config_factory, overrides):
        store.repository.save(SUPPLIER, config_factory(enabled=False, **overrides))
        assert store.is_configured(SUPPLIER) is False

    def test_preexisting_invalid_record(self, store, config_factory):
        # written behind the store's back, e.g. by an older version
        store.repository.save(SUPPLIER, config_factory(officine_id=''))
        assert store.is_configured(SUPPLIER) is False

    def test_optional_fields_not_required(self, store, config_factory):
        store.save(SUPPLIER, config_factory(secret_key=None, dispatcher_code=None, country_code=None))
        assert store.is_configured(SUPPLIER) is True


class TestConfigured:

    def test_returns_the_usable_config(self, store, config_factory):
        store.save(SUPPLIER, config_factory())
        assert store.configured(SUPPLIER) == store.get(SUPPLIER)

    @pytest.mark.parametrize('overrides', [{'enabled': False}, {'officine_id': ''}])
    def test_unusable_config_gives_none(self, store, config_factory, overrides):
        store.repository.save(SUPPLIER, config_factory(**overrides))
        assert store.configured(SUPPLIER) is None

    def test_loads_the_record_once(self, store, config_factory, monkeypatch):
        store.save(SUPPLIER, config_factory())
        loads = []
        load = store.repository.load
        monkeypatch.setattr(store.repository, 'load', lambda supplier_id: loads.append(supplier_id) or load(supplier_id))

        assert store.configured(SUPPLIER) is not None
        assert loads == [SUPPLIER]


def test_missing_fields_order(config_factory):
    config = config_factory(officine_id=None, endpoint_url='')
    assert missing_fields(config) == ['endpoint_url', 'officine_id']


class TestApplyCountry:

    def test_prefills_without_saving(self, store, config_factory):
        store.save(SUPPLIER, config_factory(endpoint_url='http://old.example/pharmaml', country_code=None))

        result = store.apply_country(SUPPLIER, 'CG')

        assert result.endpoint_url == 'http://pharma-ml.ubipharm-congo.com/COOPHARCO'
        assert result.officine_id == '201117'
        assert store.get(SUPPLIER).endpoint_url == 'http://old.example/pharmaml'

    def test_new_supplier_starts_disabled(self, store):
        result = store.apply_country('NEW', 'SN')
        assert result.enabled is False
        assert result.country_code == 'SN'
        assert store.get('NEW') is None
