"""
Unit tests for the country catalog.

Pure data, no I/O:
1. lookup by code (case-insensitive, unknown → None)
2. catalog listing
3. pre-filling a supplier configuration from a country
"""
import pytest

from pharmaml_service import countries
from pharmaml_service.exceptions import NotFoundError
from pharmaml_service.models import SupplierConfig


class TestLookup:

    def test_congo_defaults(self):
        template = countries.lookup('CG')
        assert template.default_endpoint_url == 'http://pharma-ml.ubipharm-congo.com/COOPHARCO'
        assert template.default_dispatcher_code == '28'
        assert template.dialect == 'pharmaml-1.0'

    def test_case_and_whitespace_insensitive(self):
        assert countries.lookup(' cg ') == countries.lookup('CG')

    @pytest.mark.parametrize('code', ['XX', '', None])
    def test_unknown_returns_none(self, code):
        assert countries.lookup(code) is None

    def test_templates_are_immutable(self):
        template = countries.lookup('CG')
        with pytest.raises(Exception):
            template.default_dispatcher_code = '99'


class TestCatalog:

    def test_sorted_by_label(self):
        labels = [t.label for t in countries.available_countries()]
        assert labels == sorted(labels)
        assert 'Congo (Brazzaville)' in labels

    def test_dialect_for_unknown_country_is_default(self):
        assert countries.dialect_for('XX') == countries.DEFAULT_DIALECT
        assert countries.dialect_for('CI') == 'pharmaml-1.1-ns'


class TestApplyCountryDefaults:

    def test_only_url_code_and_country_change(self):
        config = SupplierConfig(
            enabled=True,
            endpoint_url='http://old.example/pharmaml',
            dispatcher_code='11',
            dispatcher_id='BZV04',
            secret_key='SECRET',
            officine_id='201117',
        )
        result = countries.apply_country_defaults(config, 'cg')

        assert result.country_code == 'CG'
        assert result.endpoint_url == 'http://pharma-ml.ubipharm-congo.com/COOPHARCO'
        assert result.dispatcher_code == '28'
        assert result.dispatcher_id == 'BZV04'
        assert result.secret_key == 'SECRET'
        assert result.officine_id == '201117'
        assert result.enabled is True
        # original untouched
        assert config.endpoint_url == 'http://old.example/pharmaml'

    def test_unknown_country_raises(self):
        with pytest.raises(NotFoundError) as exc_info:
            countries.apply_country_defaults(SupplierConfig(), 'XX')
        assert exc_info.value.code == 'COUNTRY_NOT_FOUND'
