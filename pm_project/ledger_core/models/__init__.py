from .account import AC_TYPES, DEFAULT_CATEGORY_BY_TYPE, Account
from .expense import (EXPENSE_CATEGORIES, PAYMENT_METHODS, PAYMENT_STATUS,
                      Expense)
from .ledger import TRANSACTION_SOURCES, LedgerLine, LedgerTransaction
from .request import (ITEM_CATEGORIES, REQUEST_STATUS, ItemChange,
                      MonthlyApproval, MonthlyRequest, Quotation,
                      RequestHistory, RequestItem, first_of_month,
                      month_label)

__all__ = [
    "AC_TYPES",
    "DEFAULT_CATEGORY_BY_TYPE",
    "Account",
    "EXPENSE_CATEGORIES",
    "PAYMENT_METHODS",
    "PAYMENT_STATUS",
    "Expense",
    "TRANSACTION_SOURCES",
    "LedgerLine",
    "LedgerTransaction",
    "ITEM_CATEGORIES",
    "REQUEST_STATUS",
    "ItemChange",
    "MonthlyApproval",
    "MonthlyRequest",
    "Quotation",
    "RequestHistory",
    "RequestItem",
    "first_of_month",
    "month_label",
]
