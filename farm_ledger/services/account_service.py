"""
AccountService -- the tenant chart-of-accounts store.

Responsibility:
    Seeds the default farm chart for new tenants, creates and deactivates
    accounts, and resolves the account codes a GL rule produced into the
    tenant's active account rows.

Architecture position:
    Services -- imperative shell.  Flush-only; callers own the commit.

Invariants enforced:
    - Seeding is a no-op when the tenant already has any account (checked by
      count, so a partially customised chart is never topped up).
    - Inactive accounts never resolve.
    - System accounts cannot be deactivated.

Failure modes:
    - RequiredAccountsNotFoundError from resolve_codes, listing every missing
      code so the operator can fix the chart in one pass.
    - DuplicateAccountCodeError, AccountNotFoundError,
      SystemAccountProtectedError from the administrative operations.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from farm_ledger.domain.chart_of_accounts import DEFAULT_CHART_OF_ACCOUNTS
from farm_ledger.exceptions import (
    AccountNotFoundError,
    DuplicateAccountCodeError,
    RequiredAccountsNotFoundError,
    SystemAccountProtectedError,
)
from farm_ledger.logging_config import get_logger
from farm_ledger.models.account import Account, AccountType, NormalBalance

logger = get_logger("services.account")


class AccountService:
    """Tenant-scoped account store."""

    def __init__(self, session: Session):
        self._session = session

    def seed_chart_of_accounts(self, tenant_id: str, created_by: str = "system") -> int:
        """
        Create the default chart for a tenant that has no accounts yet.

        Returns:
            Number of accounts created (0 when the tenant already had some).
        """
        existing = self._session.execute(
            select(func.count()).select_from(Account).where(Account.tenant_id == tenant_id)
        ).scalar_one()
        if existing > 0:
            logger.info(
                "chart_of_accounts_seed_skipped",
                extra={"tenant_id": tenant_id, "existing_count": existing},
            )
            return 0

        for spec in DEFAULT_CHART_OF_ACCOUNTS:
            self._session.add(
                Account(
                    tenant_id=tenant_id,
                    code=spec.code,
                    name=spec.name,
                    account_type=spec.account_type,
                    subtype=spec.subtype,
                    normal_balance=spec.normal_balance,
                    is_system=True,
                    is_active=True,
                    created_by=created_by,
                )
            )
        self._session.flush()

        logger.info(
            "chart_of_accounts_seeded",
            extra={"tenant_id": tenant_id, "account_count": len(DEFAULT_CHART_OF_ACCOUNTS)},
        )
        return len(DEFAULT_CHART_OF_ACCOUNTS)

    def get_account_by_code(self, tenant_id: str, code: str) -> Account | None:
        """Active account with ``code``, or None."""
        return self._session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
                Account.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def get_accounts(self, tenant_id: str, include_inactive: bool = False) -> list[Account]:
        """Tenant accounts ordered by code."""
        stmt = select(Account).where(Account.tenant_id == tenant_id)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self._session.execute(stmt.order_by(Account.code)).scalars())

    def resolve_codes(
        self, tenant_id: str, codes: list[str], event_type: str
    ) -> dict[str, Account]:
        """
        Map each code to the tenant's active account.

        Reads the database on every call; account configuration can change
        between postings.

        Raises:
            RequiredAccountsNotFoundError: at least one code has no active account.
        """
        rows = self._session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code.in_(codes),
                Account.is_active.is_(True),
            )
        ).scalars()
        by_code = {account.code: account for account in rows}

        missing = [code for code in codes if code not in by_code]
        if missing:
            logger.warning(
                "required_accounts_missing",
                extra={
                    "tenant_id": tenant_id,
                    "event_type": event_type,
                    "missing_codes": missing,
                },
            )
            raise RequiredAccountsNotFoundError(event_type, missing)

        return by_code

    def create_account(
        self,
        tenant_id: str,
        code: str,
        name: str,
        account_type: AccountType,
        normal_balance: NormalBalance,
        subtype: str | None = None,
        created_by: str = "system",
    ) -> Account:
        """
        Add a tenant-defined (non-system) account.

        Raises:
            DuplicateAccountCodeError: the code is already used, active or not.
        """
        taken = self._session.execute(
            select(Account.id).where(Account.tenant_id == tenant_id, Account.code == code)
        ).first()
        if taken is not None:
            raise DuplicateAccountCodeError(tenant_id, code)

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=account_type,
            subtype=subtype,
            normal_balance=normal_balance,
            is_system=False,
            is_active=True,
            created_by=created_by,
        )
        self._session.add(account)
        self._session.flush()
        logger.info(
            "account_created",
            extra={"tenant_id": tenant_id, "account_code": code},
        )
        return account

    def deactivate_account(self, tenant_id: str, code: str) -> Account:
        """
        Hide an account from code lookup.  Accounts are never deleted.

        Raises:
            AccountNotFoundError: no such code for the tenant.
            SystemAccountProtectedError: the account was seeded at provisioning.
        """
        account = self._session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(tenant_id, code)
        if account.is_system:
            raise SystemAccountProtectedError(code)

        account.is_active = False
        self._session.flush()
        logger.info(
            "account_deactivated",
            extra={"tenant_id": tenant_id, "account_code": code},
        )
        return account
