import hashlib
import logging
import re
from dataclasses import dataclass

from django.db import DatabaseError, IntegrityError, transaction

from ..exceptions import AccountResolutionError
from ..models import Account

logger = logging.getLogger(__name__)

# ----------------------------
# Static account tables
# ----------------------------

# Ordered: first group with a matching keyword wins.
# Fuel comes before gas so "gasoline"/"diesel" never land on the gas account.
KEYWORD_ACCOUNTS = [
    (("fuel", "gasoline", "diesel", "petrol", "toll", "tolls", "transport",
      "transportation", "travel", "taxi"),
     "5015", "Fuel & Transportation Expense"),
    (("water", "sewer", "sewage"), "5001", "Water & Sewer Expense"),
    (("electricity", "power", "prepaid units"), "5002", "Electricity Expense"),
    (("gas", "lpg"), "5003", "Gas Expense"),
    (("internet", "wifi", "telephone", "phone", "phones", "airtime"),
     "5004", "Internet & Telephone Expense"),
    (("plumbing", "pipe", "pipes", "drain", "drains", "toilet", "toilets",
      "sink", "sinks", "geyser", "geysers"),
     "5006", "Plumbing Maintenance Expense"),
    (("electrical", "wiring", "light", "lights", "lighting", "switch", "switches",
      "socket", "sockets"),
     "5007", "Electrical Maintenance Expense"),
    (("hvac", "heating", "air conditioning", "ventilation"),
     "5008", "HVAC Maintenance Expense"),
    (("roof", "roofing", "painting", "paint", "carpentry", "door", "doors",
      "window", "windows", "flooring", "repair", "repairs"),
     "5005", "General Maintenance Expense"),
    (("cleaning", "janitorial", "housekeeping"), "5012", "Cleaning Services Expense"),
    (("security", "guard", "guards", "patrol", "alarm", "alarms"),
     "5013", "Security Services Expense"),
    (("landscaping", "garden", "gardening", "lawn", "lawns"), "5014", "Landscaping Expense"),
    (("salary", "salaries", "wage", "wages", "payroll"), "5025", "Salaries & Wages Expense"),
    (("insurance",), "5020", "Insurance Expense"),
    (("legal", "lawyer", "attorney"), "5021", "Legal & Professional Expense"),
    (("property tax", "tax", "taxes", "rates"), "5022", "Property Tax Expense"),
    (("permit", "permits", "license", "licenses", "licence", "licences"),
     "5023", "Permits & Licenses Expense"),
    (("supplies", "supply", "materials", "material", "stationery"), "5017", "Supplies Expense"),
    (("tools", "tool", "equipment"), "5019", "Tools & Equipment Expense"),
    (("office", "administrative", "admin"), "5026", "Administrative Expense"),
    (("management",), "5027", "Property Management Expense"),
    (("accounting", "bookkeeping", "audit"), "5028", "Accounting & Bookkeeping Expense"),
]

# Matched against the provider name only
PROVIDER_ACCOUNTS = [
    (("zinwa", "national water", "city council"), "5001", "Water & Sewer Expense"),
    (("zesa", "zetdc"), "5002", "Electricity Expense"),
    (("cleanpro", "clean"), "5012", "Cleaning Services Expense"),
    (("secureguard", "secure"), "5013", "Security Services Expense"),
    (("maintainpro", "maintenance", "handyman"), "5005", "General Maintenance Expense"),
    (("landscape", "garden"), "5014", "Landscaping Expense"),
]

CATEGORY_ACCOUNTS = {
    "utilities": ("5010", "Utilities Expense"),
    "maintenance": ("5005", "General Maintenance Expense"),
    "supplies": ("5017", "Supplies Expense"),
    "equipment": ("5019", "Tools & Equipment Expense"),
    "services": ("5029", "Professional Services Expense"),
    "other": ("5099", "Other Operating Expenses"),
}

DEFAULT_EXPENSE_ACCOUNT = ("5099", "Other Operating Expenses")

BANK_ACCOUNT = ("1000", "Bank Account")
CASH_ACCOUNT = ("1015", "Cash on Hand")

PAYMENT_SOURCE_ACCOUNTS = {
    "bank transfer": BANK_ACCOUNT,
    "online payment": BANK_ACCOUNT,
    "mastercard": BANK_ACCOUNT,
    "visa": BANK_ACCOUNT,
    "paypal": BANK_ACCOUNT,
    "cash": CASH_ACCOUNT,
    "ecocash": ("1016", "Mobile Money - Ecocash"),
    "innbucks": ("1017", "Mobile Money - Innbucks"),
    "petty cash": ("1010", "Petty Cash"),
}

# items without a vendor paid on the spot credit cash instead of a payable
IMMEDIATE_PAYMENT_METHODS = {"cash", "immediate", "petty cash"}

GENERAL_PAYABLE_ACCOUNT = ("2000", "Accounts Payable")
VENDOR_PAYABLE_PREFIX = "Accounts Payable: "


# ----------------------------
# Resolution inputs
# ----------------------------
@dataclass(frozen=True)
class AccountCriteria:
    """What is being expensed: drives the debit side of an accrual."""

    title: str = ""
    description: str = ""
    provider: str = ""
    category: str = ""

    @classmethod
    def from_item(cls, item):
        return cls(
            title=item.title or "",
            description=item.description or "",
            provider=item.vendor_name or "",
            category=item.category or "",
        )

    @property
    def search_text(self):
        return f"{self.title} {self.description} {self.provider}".lower()


@dataclass(frozen=True)
class PayableCriteria:
    """Who is owed: vendor payable, cash, or the general payable."""

    provider: str = ""
    payment_method: str = ""


@dataclass(frozen=True)
class PaymentSourceCriteria:
    """Where money leaves from when an expense is settled."""

    payment_method: str = ""


def contains_keyword(text, keyword):
    """True when `keyword` appears in `text` as a whole word or phrase."""
    # "gas" does not match "vegas" or "gasket"; plurals are listed explicitly
    return re.search(r"\b" + re.escape(keyword) + r"\b", text) is not None


def _first_match(text, table):
    for keywords, code, name in table:
        if any(contains_keyword(text, kw) for kw in keywords):
            return code, name
    return None


# ----------------------------
# Lookup / lazy creation
# ----------------------------
def _find_account(code):
    return Account.objects.filter(code=code).first()


def _create_account(code, name, ac_type, parent=None):
    return Account.objects.create(
        code=code,
        name=name,
        ac_type=ac_type,
        parent=parent,
        description=f"Auto-created for {name}",
    )


def get_or_create_account(code, name, ac_type, parent=None):
    """
    Return the account with `code`, creating it if it does not exist.
    Concurrent creators race on the unique code; the loser re-reads the
    winner's row, so one code never produces two accounts.
    """
    try:
        account = _find_account(code)
        if account is not None:
            return account
        try:
            # savepoint, so a conflict does not poison the caller's transaction
            with transaction.atomic():
                account = _create_account(code, name, ac_type, parent)
        except IntegrityError:
            account = _find_account(code)
            if account is None:
                raise
            return account
        logger.info("Created account %s - %s (%s)", code, name, ac_type)
        return account
    except DatabaseError as exc:
        logger.error("Account %s could not be resolved: %s", code, exc)
        raise AccountResolutionError(
            f"Could not find or create account {code} ({name}): {exc}"
        ) from exc


# ----------------------------
# Resolvers
# ----------------------------
def expense_account_for(criteria):
    """Pick the (code, name) pair for an expense: keyword, provider, category, default."""
    match = _first_match(criteria.search_text, KEYWORD_ACCOUNTS)
    if match:
        return match
    if criteria.provider:
        match = _first_match(criteria.provider.lower(), PROVIDER_ACCOUNTS)
        if match:
            return match
    category = (criteria.category or "").lower()
    if category in CATEGORY_ACCOUNTS:
        return CATEGORY_ACCOUNTS[category]
    return DEFAULT_EXPENSE_ACCOUNT


def resolve_account(criteria):
    """Resolve an item's expense account, creating it on first use."""
    code, name = expense_account_for(criteria)
    return get_or_create_account(code, name, "Expense")


def payment_source_account(payment_method):
    """Asset account money is paid from; unknown methods use the bank."""
    key = (payment_method or "").strip().lower()
    code, name = PAYMENT_SOURCE_ACCOUNTS.get(key, BANK_ACCOUNT)
    return get_or_create_account(code, name, "Asset")


def general_payable_account():
    code, name = GENERAL_PAYABLE_ACCOUNT
    return get_or_create_account(code, name, "Liability")


def vendor_payable_code(provider):
    normalized = " ".join(provider.lower().split())
    digest = hashlib.sha1(normalized.encode()).hexdigest()[:8]
    return f"{GENERAL_PAYABLE_ACCOUNT[0]}-{digest}"


def vendor_payable_account(provider):
    """Vendor sub-ledger nested under the general payable."""
    parent = general_payable_account()
    return get_or_create_account(
        vendor_payable_code(provider),
        f"{VENDOR_PAYABLE_PREFIX}{provider.strip()}",
        "Liability",
        parent=parent,
    )


def payable_account(criteria):
    if criteria.provider and criteria.provider.strip():
        return vendor_payable_account(criteria.provider)
    if (criteria.payment_method or "").strip().lower() in IMMEDIATE_PAYMENT_METHODS:
        code, name = CASH_ACCOUNT
        return get_or_create_account(code, name, "Asset")
    return general_payable_account()


def resolve(target):
    """Turn any posting-side input into an Account."""
    if isinstance(target, Account):
        return target
    if isinstance(target, AccountCriteria):
        return resolve_account(target)
    if isinstance(target, PayableCriteria):
        return payable_account(target)
    if isinstance(target, PaymentSourceCriteria):
        return payment_source_account(target.payment_method)
    if isinstance(target, str):
        try:
            account = _find_account(target)
        except DatabaseError as exc:
            raise AccountResolutionError(f"Could not read account {target}: {exc}") from exc
        if account is None:
            raise AccountResolutionError(f"Account {target} does not exist")
        return account
    raise AccountResolutionError(f"Cannot resolve an account from {target!r}")


def standard_accounts():
    """Every account the static tables can produce, as (code, name, type)."""
    seen = {}
    for _, code, name in KEYWORD_ACCOUNTS + PROVIDER_ACCOUNTS:
        seen.setdefault(code, (code, name, "Expense"))
    for code, name in list(CATEGORY_ACCOUNTS.values()) + [DEFAULT_EXPENSE_ACCOUNT]:
        seen.setdefault(code, (code, name, "Expense"))
    for code, name in set(PAYMENT_SOURCE_ACCOUNTS.values()):
        seen.setdefault(code, (code, name, "Asset"))
    code, name = GENERAL_PAYABLE_ACCOUNT
    seen.setdefault(code, (code, name, "Liability"))
    return sorted(seen.values())
