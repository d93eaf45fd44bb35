from .chart import (AccountCriteria, PayableCriteria, PaymentSourceCriteria,
                    general_payable_account, get_or_create_account,
                    payment_source_account, resolve_account,
                    vendor_payable_account)
from .conversion import ConversionResult, ItemError, convert_to_expenses
from .expenses import (category_for_account_name, expense_date_for,
                       flag_overdue_expenses, mark_expense_paid,
                       materialize_expense)
from .lifecycle import (ApprovalResult, add_item, add_quotation,
                        approve_request, create_request, delete_request,
                        reject_request, resubmit_request, select_quotation,
                        submit_request, update_request)
from .posting import EntrySpec, PostingEvent, post, post_entries
from .templates import (add_template_item, approve_month,
                        approve_template_change, create_from_template,
                        create_template, modify_template_item,
                        reject_month, reject_template_change,
                        remove_template_item, submit_month)

__all__ = [
    "AccountCriteria",
    "PayableCriteria",
    "PaymentSourceCriteria",
    "general_payable_account",
    "get_or_create_account",
    "payment_source_account",
    "resolve_account",
    "vendor_payable_account",
    "ConversionResult",
    "ItemError",
    "convert_to_expenses",
    "category_for_account_name",
    "expense_date_for",
    "flag_overdue_expenses",
    "mark_expense_paid",
    "materialize_expense",
    "ApprovalResult",
    "add_item",
    "add_quotation",
    "approve_request",
    "create_request",
    "delete_request",
    "reject_request",
    "resubmit_request",
    "select_quotation",
    "submit_request",
    "update_request",
    "EntrySpec",
    "PostingEvent",
    "post",
    "post_entries",
    "add_template_item",
    "approve_month",
    "approve_template_change",
    "create_from_template",
    "create_template",
    "modify_template_item",
    "reject_month",
    "reject_template_change",
    "remove_template_item",
    "submit_month",
]
