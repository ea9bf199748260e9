"""
Default farm chart of accounts and the account codes the GL rules post to.

Every tenant is seeded with DEFAULT_CHART_OF_ACCOUNTS at provisioning
(AccountService.seed_chart_of_accounts).  GL rules refer to accounts only by
the code constants below; the posting engine resolves codes to the tenant's
account rows at posting time.
"""

from dataclasses import dataclass

from farm_ledger.models.account import AccountType, NormalBalance

CASH = "1000"
ACCOUNTS_RECEIVABLE = "1100"
FEED_INVENTORY = "1200"
SUPPLY_INVENTORY = "1300"
LIVESTOCK = "1400"
ACCOUNTS_PAYABLE = "2000"
SALES_REVENUE = "4000"
COST_OF_GOODS_SOLD = "5000"
FEED_EXPENSE = "6000"
INVENTORY_ADJUSTMENT = "6200"


@dataclass(frozen=True, slots=True)
class AccountSpec:
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    subtype: str | None = None


_A, _L, _Q, _I, _C, _E = (
    AccountType.ASSET,
    AccountType.LIABILITY,
    AccountType.EQUITY,
    AccountType.INCOME,
    AccountType.COGS,
    AccountType.EXPENSE,
)
_DR, _CR = NormalBalance.DEBIT, NormalBalance.CREDIT

DEFAULT_CHART_OF_ACCOUNTS: tuple[AccountSpec, ...] = (
    # Assets
    AccountSpec(CASH, "Cash", _A, _DR, "CASH"),
    AccountSpec(ACCOUNTS_RECEIVABLE, "Accounts Receivable", _A, _DR, "AR"),
    AccountSpec(FEED_INVENTORY, "Feed Inventory", _A, _DR, "INVENTORY"),
    AccountSpec(SUPPLY_INVENTORY, "Supply Inventory", _A, _DR, "INVENTORY"),
    AccountSpec(LIVESTOCK, "Livestock - Market", _A, _DR, "LIVESTOCK"),
    AccountSpec("1500", "Equipment", _A, _DR, "EQUIPMENT"),
    # Liabilities
    AccountSpec(ACCOUNTS_PAYABLE, "Accounts Payable", _L, _CR, "AP"),
    AccountSpec("2100", "Notes Payable", _L, _CR, "LOAN"),
    # Equity
    AccountSpec("3000", "Owner's Equity", _Q, _CR, "OWNER_EQUITY"),
    AccountSpec("3100", "Retained Earnings", _Q, _CR, "RETAINED_EARNINGS"),
    # Income
    AccountSpec(SALES_REVENUE, "Sales Revenue", _I, _CR, "SALES"),
    AccountSpec("4100", "Service Income", _I, _CR, "SERVICE_INCOME"),
    # Cost of goods sold
    AccountSpec(COST_OF_GOODS_SOLD, "Cost of Goods Sold", _C, _DR),
    # Expenses
    AccountSpec(FEED_EXPENSE, "Feed Expense", _E, _DR, "FEED"),
    AccountSpec("6100", "Supplies Expense", _E, _DR, "OTHER"),
    AccountSpec(INVENTORY_ADJUSTMENT, "Inventory Adjustment", _E, _DR, "OTHER"),
    AccountSpec("6300", "Medical Expense", _E, _DR, "MEDICAL"),
    AccountSpec("6400", "Labor Expense", _E, _DR, "LABOR"),
    AccountSpec("6500", "Fuel Expense", _E, _DR, "FUEL"),
    AccountSpec("6600", "Repairs & Maintenance", _E, _DR, "REPAIRS"),
    AccountSpec("6700", "Utilities", _E, _DR, "UTILITIES"),
    AccountSpec("6800", "Insurance", _E, _DR, "INSURANCE"),
    AccountSpec("6900", "Depreciation", _E, _DR, "DEPRECIATION"),
)
