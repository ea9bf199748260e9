"""Tenant settings store."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from farm_ledger.domain.settings import TenantSettings
from farm_ledger.logging_config import get_logger
from farm_ledger.models.tenant import Tenant

logger = get_logger("services.tenant")


class TenantService:
    """
    Reads and writes tenant rows.

    ``get_settings`` always queries the database; callers must not cache the
    result across postings because costing mode and reorder settings can
    change between them.
    """

    def __init__(self, session: Session):
        self._session = session

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        return self._session.execute(
            select(Tenant).where(Tenant.tenant_id == tenant_id)
        ).scalar_one_or_none()

    def get_settings(self, tenant_id: str) -> TenantSettings:
        """Current settings; defaults when the tenant row or a key is missing."""
        row = self._session.execute(
            select(Tenant.settings).where(Tenant.tenant_id == tenant_id)
        ).scalar_one_or_none()
        return TenantSettings.from_document(row)

    def create_tenant(
        self,
        tenant_id: str,
        name: str = "",
        settings: dict[str, Any] | None = None,
        created_by: str = "system",
    ) -> Tenant:
        tenant = Tenant(
            tenant_id=tenant_id,
            name=name,
            settings=dict(settings or {}),
            created_by=created_by,
        )
        self._session.add(tenant)
        self._session.flush()
        logger.info("tenant_created", extra={"tenant_id": tenant_id})
        return tenant

    def update_settings(self, tenant_id: str, **changes: Any) -> Tenant:
        """
        Merge camelCase setting changes into the tenant's settings document.

            tenants.update_settings("t1", livestockCostingMode="CAPITALIZE")
        """
        tenant = self.get_tenant(tenant_id)
        if tenant is None:
            tenant = self.create_tenant(tenant_id)
        # New dict so the JSON column registers the change
        tenant.settings = {**(tenant.settings or {}), **changes}
        self._session.flush()
        logger.info(
            "tenant_settings_updated",
            extra={"tenant_id": tenant_id, "keys": sorted(changes)},
        )
        return tenant
