"""
supplier_config.py — Supplier PharmaML Configuration Store

Accessor over the per-supplier PharmaML configuration. The completeness rule
(enabled ⇒ endpoint_url, dispatcher_id and officine_id present) is enforced when
saving and re-checked by `configured` / `is_configured`, which gate every send attempt.
"""

import logging
from typing import List, Optional

from .countries import apply_country_defaults
from .exceptions import ValidationError
from .models import SupplierConfig
from .repositories import SupplierConfigRepository

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("endpoint_url", "dispatcher_id", "officine_id")


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def missing_fields(config: SupplierConfig) -> List[str]:
    """Names of the required fields that are empty (None or whitespace only)."""
    return [name for name in REQUIRED_FIELDS if _blank(getattr(config, name))]


class SupplierConfigStore:
    """
    CRUD accessor for SupplierConfig records on top of a SupplierConfigRepository.
    Records are never deleted: a supplier is switched off by saving enabled=False.
    """

    def __init__(self, repository: SupplierConfigRepository):
        self.repository = repository

    def get(self, supplier_id: str) -> Optional[SupplierConfig]:
        return self.repository.load(supplier_id)

    def save(self, supplier_id: str, config: SupplierConfig) -> SupplierConfig:
        """
        Validates and persists a configuration.

        Blank strings are stored as None. Disabled configurations may be partial.

        Returns:
            SupplierConfig: The normalised configuration as stored.
        Raises:
            ValidationError: If enabled and a required field is empty.
        """
        updates = {
            name: value.strip() or None
            for name, value in config.model_dump().items()
            if isinstance(value, str)
        }
        if updates.get("country_code"):
            updates["country_code"] = updates["country_code"].upper()
        normalised = config.model_copy(update=updates)

        missing = missing_fields(normalised)
        if normalised.enabled and missing:
            log.warning(f"[Fournisseur: {supplier_id}] Configuration PharmaML incomplète, champs manquants: {missing}")
            raise ValidationError(
                message="Configuration PharmaML incomplète: URL, ID répartiteur et ID officine sont obligatoires.",
                code='PHARMAML_CONFIG_INCOMPLETE',
                detail={'supplier_id': supplier_id, 'missing_fields': missing},
            )

        self.repository.save(supplier_id, normalised)
        log.info(f"[Fournisseur: {supplier_id}] Configuration PharmaML enregistrée (active={normalised.enabled}).")
        return normalised

    def is_configured(self, supplier_id: str) -> bool:
        """True iff a config exists, is enabled and has all required fields."""
        return self.configured(supplier_id) is not None

    def configured(self, supplier_id: str) -> Optional[SupplierConfig]:
        """
        Loads the configuration once and returns it only if it may be used for
        sending (enabled and complete), otherwise None.
        """
        config = self.get(supplier_id)
        if config is None or not config.enabled or missing_fields(config):
            return None
        return config

    def apply_country(self, supplier_id: str, country_code: str) -> SupplierConfig:
        """
        Returns the supplier's configuration pre-filled with the country defaults.
        Nothing is saved: the user reviews the values and saves them explicitly.
        """
        current = self.get(supplier_id) or SupplierConfig()
        return apply_country_defaults(current, country_code)
