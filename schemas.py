"""
Database Schemas for Personal Finance App

Input models validate what clients send and what gets stored in MongoDB
(collection name = lowercased class name of the stored document: ``user``,
``transaction``). Output models render documents and derived reports with
camelCase field names.
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class TransactionCategory(str, Enum):
    GROCERIES = "Groceries"
    ENTERTAINMENT = "Entertainment"
    UTILITIES = "Utilities"
    FOOD_AND_DRINKS = "Food & Drinks"
    TRANSPORTATION = "Transportation"
    INCOME = "Income"
    OTHER = "Other"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Currency(str, Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class Language(str, Enum):
    EN = "en"
    HI = "hi"
    ES = "es"
    FR = "fr"


EDITABLE_TRANSACTION_FIELDS = ("amount", "description", "category", "type", "date")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Auth / users

class AuthUser(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    username: Optional[str] = Field(None, max_length=50)


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    email: EmailStr
    username: Optional[str] = None
    password_hash: str
    is_active: bool = True
    currency: Currency = Currency.INR
    language: Language = Language.EN
    monthly_budget: float = Field(0, ge=0)


class UserOut(CamelModel):
    id: str
    email: str
    username: Optional[str] = None
    currency: str = Currency.INR.value
    language: str = Language.EN.value
    monthly_budget: float = 0

    @classmethod
    def from_document(cls, doc: dict) -> "UserOut":
        return cls(
            id=str(doc["_id"]),
            email=doc["email"],
            username=doc.get("username"),
            currency=doc.get("currency", Currency.INR.value),
            language=doc.get("language", Language.EN.value),
            monthly_budget=doc.get("monthly_budget", 0),
        )


class ProfileUpdate(CamelModel):
    model_config = ConfigDict(use_enum_values=True)

    username: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    currency: Optional[Currency] = None
    language: Optional[Language] = None
    monthly_budget: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class PasswordUpdate(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ProfileResponse(BaseModel):
    message: str
    user: UserOut


class MeResponse(BaseModel):
    user: UserOut


class JWTToken(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Transactions

class TransactionCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, str_strip_whitespace=True)

    amount: float = Field(..., ge=0, allow_inf_nan=False)
    description: str = Field(..., min_length=1, max_length=200)
    category: TransactionCategory
    type: TransactionType
    date: Optional[datetime] = None


class TransactionUpdate(BaseModel):
    """Partial update; only the fields a client actually sends are applied."""

    model_config = ConfigDict(use_enum_values=True, str_strip_whitespace=True)

    amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[TransactionCategory] = None
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None


class TransactionOut(CamelModel):
    id: str
    amount: float
    description: str
    category: str
    type: str
    date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict) -> "TransactionOut":
        return cls(
            id=str(doc["_id"]),
            amount=doc["amount"],
            description=doc["description"],
            category=doc["category"],
            type=doc["type"],
            date=doc["date"],
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class TransactionPage(CamelModel):
    transactions: List[TransactionOut]
    total: int
    total_pages: int
    current_page: int
    limit: int


class DeleteResponse(BaseModel):
    message: str = "Transaction deleted successfully"


# Reports

class Summary(CamelModel):
    total_income: float = 0
    total_expenses: float = 0
    net_savings: float = 0


class CategoryTotal(CamelModel):
    category: str
    total: float
    count: int


class MonthlyTotal(CamelModel):
    month: str = Field(..., description="YYYY-MM")
    total: float
    count: int


class BudgetStatus(CamelModel):
    monthly_budget: float
    total_expenses: float
    progress_percentage: float
    status: Literal["on-track", "over-budget", "no-budget"]
    overage: float
    remaining: float
