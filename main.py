# main.py
import logging
import secrets
import time
from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path as FilePath
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Path, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from auth_service import AuthService
from authorization import Caller, get_current_user, require_admin
from category_service import CategoryService
from config import Settings, get_settings
from database import Database
from errors import AppError, ValidationError
from expense_service import ExpenseService
from models import (
    MIN_YEAR,
    BulkInsertResponse,
    CategoryEnvelope,
    CategoryIn,
    CategoryOut,
    CategoryTotal,
    ExpenseEnvelope,
    ExpenseIn,
    ExpenseOut,
    LoginResponse,
    MessageResponse,
    MonthlyReport,
    MonthlySummary,
    PasswordChange,
    UserEnvelope,
    UserLogin,
    UserOut,
    UserRegister,
)

logger = logging.getLogger(__name__)

# ============================================
# DEPENDENCIES
# ============================================

def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_category_service(request: Request) -> CategoryService:
    return request.app.state.category_service


def get_expense_service(request: Request) -> ExpenseService:
    return request.app.state.expense_service


def month_year(
    month: int = Path(..., ge=1, le=12),
    year: int = Path(..., ge=MIN_YEAR),
) -> tuple[int, int]:
    if year > date.today().year + 1:
        raise RequestValidationError(
            [{"loc": ("path", "year"), "msg": "Year cannot be later than next year", "type": "value_error"}]
        )
    return month, year

# ============================================
# ERROR HANDLERS
# ============================================

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def _format_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = error.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{location}: {message}" if location else message


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"errors": [_format_validation_error(error) for error in exc.errors()]},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )

# ============================================
# ROUTES: UTILITY
# ============================================

utility_router = APIRouter()


@utility_router.get("/")
async def root():
    """Welcome endpoint"""
    return {
        "message": "Welcome to Expense Tracker API",
        "version": "1.0.0",
        "docs": "/docs",
    }

# ============================================
# ROUTES: AUTHENTICATION
# ============================================

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(user: UserRegister, auth: AuthService = Depends(get_auth_service)):
    """
    Register a new user.

    Raises:
        409: Username or email already exists

    Example:
        POST /auth/register
        {
            "username": "alice",
            "email": "alice@example.com",
            "password": "SecurePass123!"
        }
    """
    created = await auth.register(user.username, user.email, user.password, user.role.value)
    return UserEnvelope(message="User registered successfully", user=created)


@auth_router.post("/login", response_model=LoginResponse)
async def login(user: UserLogin, auth: AuthService = Depends(get_auth_service)):
    """
    Login with username or email and get an access token.

    Raises:
        401: Invalid credentials
    """
    result = await auth.login(user.username, user.password)
    return LoginResponse(message="Login successful", **result)


@auth_router.get("/profile", response_model=UserEnvelope)
async def get_profile(
    caller: Caller = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    return UserEnvelope(user=await auth.get_user(caller.user_id))


@auth_router.put("/change-password", response_model=MessageResponse)
async def change_password(
    body: PasswordChange,
    caller: Caller = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.change_password(caller.user_id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated successfully")


@auth_router.put("/profile/image", response_model=UserEnvelope)
async def update_profile_image(
    request: Request,
    profile_image: Optional[UploadFile] = File(None, alias="profileImage"),
    caller: Caller = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Upload a profile picture (multipart field `profileImage`).

    Only image/* uploads up to the configured size are accepted.
    """
    settings: Settings = request.app.state.settings
    if profile_image is None:
        raise ValidationError("An image file is required")
    if not (profile_image.content_type or "").startswith("image/"):
        raise ValidationError("The file must be an image")

    # Never buffer more than one byte past the limit
    content = await profile_image.read(settings.max_file_size + 1)
    if len(content) > settings.max_file_size:
        raise ValidationError(
            f"The file is too large. Maximum {settings.max_file_size} bytes."
        )

    suffix = FilePath(profile_image.filename or "").suffix
    filename = f"profile-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"
    upload_dir = FilePath(settings.uploads_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    (upload_dir / filename).write_bytes(content)

    user = await auth.update_profile_image(caller.user_id, f"/uploads/{filename}")
    return UserEnvelope(message="Profile image updated successfully", user=user)


@auth_router.get("/users", response_model=list[UserOut])
async def list_users(
    caller: Caller = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
):
    return await auth.list_users()

# ============================================
# ROUTES: CATEGORIES (public)
# ============================================

category_router = APIRouter(tags=["categories"])


@category_router.get("/categories", response_model=list[CategoryOut])
async def get_categories(categories: CategoryService = Depends(get_category_service)):
    return await categories.list_all()


@category_router.get("/category/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: int = Path(..., gt=0),
    categories: CategoryService = Depends(get_category_service),
):
    return await categories.get(category_id)


@category_router.post("/category", response_model=CategoryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryIn,
    categories: CategoryService = Depends(get_category_service),
):
    category = await categories.create(body.name, body.description)
    return CategoryEnvelope(message="Category created successfully", category=category)


@category_router.put("/category/{category_id}", response_model=CategoryEnvelope)
async def update_category(
    body: CategoryIn,
    category_id: int = Path(..., gt=0),
    categories: CategoryService = Depends(get_category_service),
):
    category = await categories.update(category_id, body.name, body.description)
    return CategoryEnvelope(message="Category updated successfully", category=category)


@category_router.delete("/category/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: int = Path(..., gt=0),
    categories: CategoryService = Depends(get_category_service),
):
    await categories.delete(category_id)
    return MessageResponse(message="Category deleted successfully")

# ============================================
# ROUTES: EXPENSES
# ============================================

# Every expense route needs a token; the caller's role picks the scope.
expense_router = APIRouter(tags=["expenses"])


@expense_router.get("/expenses", response_model=list[ExpenseOut])
async def get_expenses(
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.list_all(caller.scope)


@expense_router.get("/expenses/fixed/all", response_model=list[ExpenseOut])
async def get_fixed_expenses(
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.list_fixed(caller.scope)


@expense_router.get("/expenses/installment/all", response_model=list[ExpenseOut])
async def get_installment_expenses(
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.list_installments(caller.scope)


@expense_router.get("/expenses/summary/{month}/{year}", response_model=MonthlySummary)
async def get_monthly_summary(
    period: tuple[int, int] = Depends(month_year),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.monthly_summary(caller.scope, *period)


@expense_router.get("/expenses/categories/{month}/{year}", response_model=list[CategoryTotal])
async def get_category_summary(
    period: tuple[int, int] = Depends(month_year),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.category_summary(caller.scope, *period)


@expense_router.get("/expenses/report/{month}/{year}", response_model=MonthlyReport)
async def get_monthly_report(
    period: tuple[int, int] = Depends(month_year),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    """
    Monthly report: summary, category totals, and the month's expenses split
    into fixed / installment / variable.
    """
    return await expenses.monthly_report(caller.scope, *period)


@expense_router.get("/expenses/{month}/{year}", response_model=list[ExpenseOut])
async def get_expenses_by_month(
    period: tuple[int, int] = Depends(month_year),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.list_by_month(caller.scope, *period)


@expense_router.get("/expense/{expense_id}", response_model=ExpenseOut)
async def get_expense(
    expense_id: int = Path(..., gt=0),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    return await expenses.get(caller.scope, expense_id)


@expense_router.post("/expense", response_model=ExpenseEnvelope, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense: ExpenseIn,
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    """
    Create a new expense owned by the caller.

    Example:
        POST /expense
        Headers: Authorization: Bearer <token>
        Body:
        {
            "description": "Coffee at Starbucks",
            "amount": 3.50,
            "date": "2024-12-10",
            "category_id": 1
        }
    """
    created = await expenses.create({**expense.model_dump(), "user_id": caller.user_id})
    return ExpenseEnvelope(message="Expense created successfully", expense=created)


@expense_router.post("/expenses", response_model=BulkInsertResponse, status_code=status.HTTP_201_CREATED)
async def create_expenses(
    items: list[ExpenseIn],
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    inserted = await expenses.create_many(
        [{**item.model_dump(), "user_id": caller.user_id} for item in items]
    )
    return BulkInsertResponse(message="Expenses created successfully", insertedRows=inserted)


@expense_router.put("/expense/{expense_id}", response_model=ExpenseEnvelope)
async def update_expense(
    expense: ExpenseIn,
    expense_id: int = Path(..., gt=0),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    updated = await expenses.update(caller.scope, expense_id, expense.model_dump())
    return ExpenseEnvelope(message="Expense updated successfully", expense=updated)


@expense_router.delete("/expense/{expense_id}", response_model=MessageResponse)
async def delete_expense(
    expense_id: int = Path(..., gt=0),
    caller: Caller = Depends(get_current_user),
    expenses: ExpenseService = Depends(get_expense_service),
):
    await expenses.delete(caller.scope, expense_id)
    return MessageResponse(message="Expense deleted successfully")

# ============================================
# APP CONFIGURATION
# ============================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application. Nothing is created at import time.

    Run with:
        uvicorn main:create_app --factory --reload
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    db = Database(settings.database_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Runs once when app starts, once when app stops."""
        logger.info("Starting up...")
        db.init_db()
        FilePath(settings.uploads_dir).mkdir(parents=True, exist_ok=True)
        yield  # App runs here
        logger.info("Shutting down...")

    app = FastAPI(
        title="Expense Tracker API",
        description="Personal expenses with categories, fixed and installment expenses",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.auth_service = AuthService(
        db,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_hours=settings.jwt_expires_hours,
    )
    app.state.category_service = CategoryService(db)
    app.state.expense_service = ExpenseService(db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(utility_router)
    app.include_router(auth_router)
    app.include_router(category_router)
    app.include_router(expense_router)
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )
    return app

