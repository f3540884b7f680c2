"""
Error kinds raised by the transaction, aggregation and budget layers.

Store failures are not wrapped: ``pymongo.errors.PyMongoError`` propagates as
is and is never retried, since a retried insert could duplicate a transaction.
"""
from pydantic import ValidationError as PydanticValidationError


class FinanceError(Exception):
    pass


class ValidationError(FinanceError):
    """Missing, malformed or out-of-range input. Nothing was written."""


class NotFoundError(FinanceError):
    """No record with that id belongs to the caller."""

    def __init__(self, message: str = "Transaction not found"):
        super().__init__(message)


def from_pydantic(exc: PydanticValidationError) -> ValidationError:
    reasons = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "body"
        reasons.append(f"{field}: {err.get('msg')}")
    return ValidationError("; ".join(reasons))
