# models.py
from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator, model_validator


class Role(str, Enum):
    admin = "admin"
    user = "user"


MIN_YEAR = 2000
MAX_AMOUNT = Decimal("9999999999.99")  # DECIMAL(12, 2)


#REQUEST MODELS - WHAT USERS WILL SEND


class UserRegister(BaseModel):
    """
    Model for User Registration

    Example:

            {
            "username": "alice",
            "email": "alice@example.com",
            "password": "SecurePass123!",
            "role": "user"
        }

    """

    username: str
    email: EmailStr
    password: str
    role: Role = Role.user

    @field_validator('username')
    @classmethod
    def validate_username(cls, value):
        if len(value) < 3:
            raise ValueError('Username must be at least 3 characters')
        if len(value) > 30:
            raise ValueError('Username must be at most 30 characters')
        if not value.isalnum():
            raise ValueError('Username can only contain letters and numbers')
        return value

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        if len(value) < 6:
            raise ValueError('Password must be at least 6 characters')
        return value


class UserLogin(BaseModel):
    """
    Model for user login. `username` may also be an email address.

    Example:
        {
            "username": "alice",
            "password": "SecurePass123!"
        }
    """
    username: str
    password: str


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_new_password(cls, value):
        if len(value) < 6:
            raise ValueError('New password must be at least 6 characters')
        return value


class CategoryIn(BaseModel):
    """
    Model for creating or replacing a category.

    Example:
        {
            "name": "Housing",
            "description": "Rent, utilities, repairs"
        }
    """
    name: str
    description: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value):
        value = value.strip()
        if len(value) < 2:
            raise ValueError('Name must be at least 2 characters')
        if len(value) > 50:
            raise ValueError('Name must be at most 50 characters')
        return value

    @field_validator('description')
    @classmethod
    def validate_description(cls, value):
        if value is not None:
            if len(value) > 255:
                raise ValueError('Description must be at most 255 characters')
            if len(value.strip()) == 0:
                return None
        return value


class ExpenseIn(BaseModel):
    """
    Model for creating or replacing an expense.

    Example:
        {
            "description": "Laptop",
            "amount": 1200.00,
            "date": "2024-12-09",
            "category_id": 2,
            "is_fixed": false,
            "is_installment": true,
            "total_installments": 12,
            "current_installment": 1,
            "notes": "Interest free"
        }
    """
    description: str
    amount: Decimal
    date: date_type  # YYYY-MM-DD format
    category_id: Optional[int] = None
    is_fixed: bool = False
    is_installment: bool = False
    total_installments: Optional[int] = None
    current_installment: Optional[int] = None
    notes: Optional[str] = None

    @field_validator('description')
    @classmethod
    def validate_description(cls, value):
        value = value.strip()
        if len(value) < 3:
            raise ValueError('Description must be at least 3 characters')
        if len(value) > 255:
            raise ValueError('Description must be at most 255 characters')
        return value

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, value):
        if value <= 0:
            raise ValueError('Amount must be greater than 0')
        if value > MAX_AMOUNT:
            raise ValueError(f'Amount cannot exceed {MAX_AMOUNT}')
        if value.as_tuple().exponent < -2:
            raise ValueError('Amount can have at most 2 decimal places')
        return value

    @field_validator('date')
    @classmethod
    def validate_date(cls, value):
        if value.year < MIN_YEAR:
            raise ValueError(f'Date cannot be before year {MIN_YEAR}')
        return value

    @field_validator('category_id', 'total_installments', 'current_installment')
    @classmethod
    def validate_positive(cls, value, info):
        if value is not None and value <= 0:
            raise ValueError(f'{info.field_name} must be a positive integer')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value):
        if value is not None:
            if len(value) > 500:
                raise ValueError('Notes must be at most 500 characters')
            if len(value.strip()) == 0:
                return None
        return value

    @model_validator(mode='after')
    def validate_installments(self):
        if self.is_installment and (
            self.total_installments is None or self.current_installment is None
        ):
            raise ValueError(
                'total_installments and current_installment are required for installment expenses'
            )
        return self


#response models - what users receive

class UserOut(BaseModel):
    """
    User information in responses.
    Note: the password hash is NEVER included in responses!
    """
    id: int
    username: str
    email: str
    profile_image: Optional[str] = None
    role: Role
    created_at: str
    updated_at: str


class UserEnvelope(BaseModel):
    message: Optional[str] = None
    user: UserOut


class LoginResponse(BaseModel):
    """
    Example:
        {
            "message": "Login successful",
            "token": "eyJhbGci...",
            "user": {"id": 1, "username": "alice", ...}
        }
    """
    message: str
    token: str
    user: UserOut


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: str
    updated_at: str


class CategoryEnvelope(BaseModel):
    message: str
    category: CategoryOut


class ExpenseOut(BaseModel):
    id: int
    description: str
    amount: Decimal
    date: str
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    is_fixed: bool
    is_installment: bool
    total_installments: Optional[int] = None
    current_installment: Optional[int] = None
    notes: Optional[str] = None
    user_id: int
    created_at: str
    updated_at: str


class ExpenseEnvelope(BaseModel):
    message: str
    expense: ExpenseOut


class BulkInsertResponse(BaseModel):
    message: str
    insertedRows: int


class MonthlySummary(BaseModel):
    totalExpenses: int
    totalAmount: Decimal
    averageAmount: Optional[Decimal] = None
    minAmount: Optional[Decimal] = None
    maxAmount: Optional[Decimal] = None
    fixedExpenses: Decimal
    variableExpenses: Decimal
    installmentExpenses: Decimal


class CategoryTotal(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    count: int
    total: Decimal
    average: Decimal


class ReportExpenses(BaseModel):
    all: list[ExpenseOut]
    fixed: list[ExpenseOut]
    variable: list[ExpenseOut]
    installment: list[ExpenseOut]


class MonthlyReport(BaseModel):
    summary: MonthlySummary
    categories: list[CategoryTotal]
    expenses: ReportExpenses


class MessageResponse(BaseModel):
    """
    Generic message response.

    Example:
        {
            "message": "Expense deleted successfully"
        }
    """
    message: str
