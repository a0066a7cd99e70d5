"""
countries.py — Country Defaults for PharmaML Suppliers

Static catalog of the default protocol parameters per country. Selecting a
country in the supplier configuration pre-fills the server URL and the
répartiteur code; all other fields stay as the user entered them.

Pure data, no side effects: safe to use from anywhere.
"""

from typing import List, Optional

from .exceptions import NotFoundError
from .models import CountryTemplate, SupplierConfig

DEFAULT_DISPATCHER_CODE = "28"
DEFAULT_SECRET_KEY = "PHDA"
DEFAULT_DIALECT = "pharmaml-1.0"

# Hors CG, les URLs sont des valeurs d'exemple à confirmer auprès du répartiteur.
COUNTRY_TEMPLATES = {
    template.country_code: template
    for template in (
        CountryTemplate(
            country_code="CG",
            label="Congo (Brazzaville)",
            default_endpoint_url="http://pharma-ml.ubipharm-congo.com/COOPHARCO",
            default_dispatcher_code="28",
        ),
        CountryTemplate(
            country_code="CI",
            label="Côte d'Ivoire",
            default_endpoint_url="http://pharma-ml.ubipharm-ci.com/PHARMAML",
            default_dispatcher_code="28",
            dialect="pharmaml-1.1-ns",
        ),
        CountryTemplate(
            country_code="SN",
            label="Sénégal",
            default_endpoint_url="http://pharma-ml.ubipharm-senegal.com/PHARMAML",
            default_dispatcher_code="28",
        ),
        CountryTemplate(
            country_code="CM",
            label="Cameroun",
            default_endpoint_url="http://pharma-ml.ubipharm-cameroun.com/PHARMAML",
            default_dispatcher_code="28",
            dialect="pharmaml-1.1-ns",
        ),
        CountryTemplate(
            country_code="GA",
            label="Gabon",
            default_endpoint_url="http://pharma-ml.ubipharm-gabon.com/PHARMAML",
            default_dispatcher_code="28",
        ),
    )
}


def lookup(country_code: Optional[str]) -> Optional[CountryTemplate]:
    """
    Returns the bundled template for a country code, or None when unknown.

    Args:
        country_code (str): ISO 3166 alpha-2 code, case-insensitive.
    """
    if not country_code:
        return None
    return COUNTRY_TEMPLATES.get(country_code.strip().upper())


def available_countries() -> List[CountryTemplate]:
    """All bundled templates, sorted by label for a country picker."""
    return sorted(COUNTRY_TEMPLATES.values(), key=lambda t: t.label)


def dialect_for(country_code: Optional[str]) -> str:
    template = lookup(country_code)
    return template.dialect if template else DEFAULT_DIALECT


def apply_country_defaults(config: SupplierConfig, country_code: str) -> SupplierConfig:
    """
    Pre-fills a supplier configuration from the country template.

    Only endpoint_url, dispatcher_code and country_code are overwritten.
    The result is a new object; nothing is persisted.

    Raises:
        NotFoundError: If the country is not in the catalog.
    """
    template = lookup(country_code)
    if template is None:
        raise NotFoundError(
            message=f"Pays PharmaML inconnu: {country_code}",
            code='COUNTRY_NOT_FOUND',
            detail={'country_code': country_code},
        )
    return config.model_copy(update={
        "country_code": template.country_code,
        "endpoint_url": template.default_endpoint_url,
        "dispatcher_code": template.default_dispatcher_code,
    })
