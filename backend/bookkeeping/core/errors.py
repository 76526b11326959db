from enum import Enum


class ErrorCode(str, Enum):
    # Store
    DB001 = "DB001"
    DB002 = "DB002"
    DB006 = "DB006"
    DB010 = "DB010"
    # Request parsing
    RE001 = "RE001"
    UM001 = "UM001"
    VA001 = "VA001"
    UI001 = "UI001"
    QS001 = "QS001"
    SE001 = "SE001"
    SE002 = "SE002"
    RL001 = "RL001"
    # Persons, person accounts, currencies
    PE002 = "PE002"
    PA002 = "PA002"
    CU002 = "CU002"
    CU005 = "CU005"
    # Transactions
    TR002 = "TR002"
    TR003 = "TR003"
    TR007 = "TR007"
    TR008 = "TR008"
    TR009 = "TR009"
    TR010 = "TR010"
    TR011 = "TR011"
    TR012 = "TR012"
    TR013 = "TR013"
    TR015 = "TR015"
    TR016 = "TR016"
    TR017 = "TR017"
    TR018 = "TR018"
    TR019 = "TR019"
    # Bills
    BL001 = "BL001"
    BL002 = "BL002"
    BL003 = "BL003"
    BL004 = "BL004"
    BL005 = "BL005"
    BL006 = "BL006"
    BL007 = "BL007"


MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.DB001: "Record not found in database",
    ErrorCode.DB002: "Database is unavailable",
    ErrorCode.DB006: "Database operation failed",
    ErrorCode.DB010: "Database operation timed out",
    ErrorCode.RE001: "Unable to read body of the request",
    ErrorCode.UM001: "Invalid data type",
    ErrorCode.VA001: "Validation error",
    ErrorCode.UI001: "Invalid UUID",
    ErrorCode.QS001: "Query string error",
    ErrorCode.SE001: "Service error",
    ErrorCode.SE002: "Maintenance routes are disabled",
    ErrorCode.RL001: "Too many requests",
    ErrorCode.PE002: "Person does not exists",
    ErrorCode.PA002: "Person account does not exist",
    ErrorCode.CU002: "Currency code should be 3 upper case letters",
    ErrorCode.CU005: "Currency it is not registered in database",
    ErrorCode.TR002: "Transaction should not generate a negative balance",
    ErrorCode.TR003: "The transaction requested is not the last transaction",
    ErrorCode.TR007: "Transaction should have a person",
    ErrorCode.TR008: "Transaction should have an amount different from zero",
    ErrorCode.TR009: "Fee should be between 0 and 1",
    ErrorCode.TR010: "Person's account does not belong to the person specified",
    ErrorCode.TR011: "Currency's mismatch",
    ErrorCode.TR012: "Money account does not exist",
    ErrorCode.TR013: "Pending bill does not exist",
    ErrorCode.TR015: "Transaction has bills that were already closed",
    ErrorCode.TR016: "A reverting transaction can not be reverted",
    ErrorCode.TR017: "Transaction amount or resulting balance is out of range",
    ErrorCode.TR018: "Account of a transaction can not be changed",
    ErrorCode.TR019: "Transactions that closed a bill or revert another one can not be edited",
    ErrorCode.BL001: "Could not request empty set of bills",
    ErrorCode.BL002: "Amount should be different from zero",
    ErrorCode.BL003: "Can not delete pending bill associated to transaction",
    ErrorCode.BL004: "Bill is already closed",
    ErrorCode.BL005: "Currency of a bill can not be changed",
    ErrorCode.BL006: "Only closed bills accept post notes",
    ErrorCode.BL007: "Amount is out of range",
}


class ServiceError(Exception):
    default_status = 400

    def __init__(self, code: ErrorCode, message: str | None = None, status_code: int | None = None):
        self.code = code
        self.message = message or MESSAGES.get(code, code.value)
        self.status_code = status_code or self.default_status
        super().__init__(self.message)

    def to_body(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code.value}


class ValidationError(ServiceError):
    def __init__(self, message: str, code: ErrorCode = ErrorCode.VA001):
        super().__init__(code, message)


class StoreError(ServiceError):
    default_status = 500
