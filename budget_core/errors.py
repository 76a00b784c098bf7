class BudgetAppError(Exception):
    """Base class for errors raised by budget_core."""


class ValidationError(BudgetAppError):
    def __init__(self, details: dict):
        super().__init__(details.get("message", "invalid record"))
        self.details = details


class InvalidCurrency(BudgetAppError):
    def __init__(self, code: str):
        super().__init__(f"Unsupported currency: {code!r}")
        self.code = code


class StorageError(BudgetAppError):
    pass


class RecordNotFound(StorageError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} record {record_id!r} not found")
        self.kind = kind
        self.record_id = record_id


class PermissionDenied(BudgetAppError):
    pass
