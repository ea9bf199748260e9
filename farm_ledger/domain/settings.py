"""Tenant accounting settings as the posting engine sees them."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Self


class LivestockCostingMode(str, Enum):
    """Whether feed given to livestock is expensed or added to the herd's cost."""

    EXPENSE = "EXPENSE"
    CAPITALIZE = "CAPITALIZE"


@dataclass(frozen=True, slots=True)
class TenantSettings:
    livestock_costing_mode: LivestockCostingMode = LivestockCostingMode.EXPENSE
    auto_reorder_enabled: bool = False
    auto_reorder_approval_required: bool = True

    @property
    def capitalizes_feed(self) -> bool:
        return self.livestock_costing_mode == LivestockCostingMode.CAPITALIZE

    @classmethod
    def from_document(cls, settings: dict[str, Any] | None) -> Self:
        """
        Read the tenant's camelCase settings document.

        Unknown or missing costing modes fall back to EXPENSE.
        """
        settings = settings or {}
        mode = settings.get("livestockCostingMode")
        return cls(
            livestock_costing_mode=(
                LivestockCostingMode.CAPITALIZE
                if mode == LivestockCostingMode.CAPITALIZE
                else LivestockCostingMode.EXPENSE
            ),
            auto_reorder_enabled=bool(settings.get("autoReorderEnabled", False)),
            auto_reorder_approval_required=bool(
                settings.get("autoReorderApprovalRequired", True)
            ),
        )
