from bookkeeping.core.errors import MESSAGES, ErrorCode, ServiceError, ValidationError
from bookkeeping.models.bills import BillFields
from bookkeeping.models.transactions import TransactionFields
from bookkeeping.services.common import in_money_range, is_zero_uuid, to_money
from bookkeeping.services.currencies import is_currency_registered, is_valid_currency_code


def collect_bill_field_errors(cur, fields: BillFields) -> list[ServiceError]:
    errors: list[ServiceError] = []
    if is_zero_uuid(fields.person_id):
        errors.append(ValidationError("Person id should be not zero uuid"))
    if not fields.description.strip():
        errors.append(ValidationError("Description is required"))
    amount = to_money(fields.amount)
    if amount == 0:
        errors.append(ValidationError(MESSAGES[ErrorCode.BL002], code=ErrorCode.BL002))
    elif not in_money_range(amount):
        errors.append(ValidationError(MESSAGES[ErrorCode.BL007], code=ErrorCode.BL007))
    if not is_valid_currency_code(fields.currency):
        errors.append(ValidationError(MESSAGES[ErrorCode.CU002]))
    elif not is_currency_registered(cur, fields.currency):
        errors.append(ServiceError(ErrorCode.CU005))
    return errors


def check_bill_fields(cur, fields: BillFields) -> None:
    # Every check runs; the first failure in declaration order is reported.
    errors = collect_bill_field_errors(cur, fields)
    if errors:
        raise errors[0]


def check_transaction_fields(fields: TransactionFields) -> None:
    if not fields.description.strip():
        raise ValidationError("Transaction should have a description")
    amount = to_money(fields.amount)
    if amount == 0:
        raise ServiceError(ErrorCode.TR008)
    if not in_money_range(amount):
        raise ServiceError(ErrorCode.TR017)
    if is_zero_uuid(fields.person_id):
        raise ServiceError(ErrorCode.TR007)
    if is_zero_uuid(fields.account_id):
        raise ServiceError(ErrorCode.TR012)
