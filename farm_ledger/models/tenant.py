"""
Module: farm_ledger.models.tenant
Responsibility: Tenant row holding the farm's accounting settings.
Architecture position: Models.  Imports db.base only.

Settings are a JSON document with camelCase keys (``livestockCostingMode``,
``autoReorderEnabled``, ``autoReorderApprovalRequired``) as written by the
administrative API.  The posting engine reads them fresh on every call.
"""

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from farm_ledger.db.base import TrackedBase


class Tenant(TrackedBase):
    """One farm business."""

    __tablename__ = "tenants"

    __table_args__ = (UniqueConstraint("tenant_id", name="uq_tenant_id"),)

    # External tenant identifier (shared with the identity provider)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Tenant {self.tenant_id}>"
