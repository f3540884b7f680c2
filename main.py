import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import PyMongoError

import database
from aggregation import DEFAULT_MONTHS, category_breakdown, monthly_spending, parse_date_bound, summarize
from budget import evaluate_budget
from database import create_document, ensure_indexes, utcnow
from errors import NotFoundError, ValidationError
from schemas import (
    AuthUser,
    BudgetStatus,
    CategoryTotal,
    DeleteResponse,
    JWTToken,
    MeResponse,
    MonthlyTotal,
    PasswordUpdate,
    ProfileResponse,
    ProfileUpdate,
    Summary,
    TransactionCreate,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
    User,
    UserOut,
)
from transactions import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    create_transaction,
    delete_transaction,
    get_transaction,
    list_transactions,
    recent_transactions,
    update_transaction,
)

# Environment
SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

# Auth setup
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        ensure_indexes(database.db)
        logger.info("Connected to database %s", database.db.name)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; data endpoints will fail")
    yield


# FastAPI app
app = FastAPI(title="Personal Finance API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Database error"})


# Helpers
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def get_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def get_user_by_email(db, email: str) -> Optional[dict]:
    return db["user"].find_one({"email": email})


def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
    except JWTError:
        raise credentials_exception
    # Subject is the user id so a changed email does not invalidate the token
    if user_id is None or not ObjectId.is_valid(user_id):
        raise credentials_exception

    user = db["user"].find_one({"_id": ObjectId(user_id)})
    if user is None or not user.get("is_active", True):
        raise credentials_exception
    return user


# Public endpoints
@app.get("/")
def root():
    return {"message": "Personal Finance API is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database_name"] = database.db.name
            response["collections"] = database.db.list_collection_names()[:10]
            response["connection_status"] = "Connected"
            response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth endpoints
@app.post("/auth/register", response_model=JWTToken, status_code=status.HTTP_201_CREATED)
def register(user: AuthUser, db=Depends(get_db)):
    if get_user_by_email(db, user.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_doc = User(
        email=user.email,
        username=user.username,
        password_hash=get_password_hash(user.password),
        is_active=True,
    )
    user_id = create_document("user", user_doc)
    logger.info("Registered user %s", user_id)
    access_token = create_access_token(data={"sub": user_id})
    return {"access_token": access_token, "token_type": "bearer"}


@app.post("/auth/login", response_model=JWTToken)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db=Depends(get_db)):
    # The OAuth2 form "username" is the email; usernames are display names and not unique
    user = get_user_by_email(db, form_data.username)
    if not user or not verify_password(form_data.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    access_token = create_access_token(data={"sub": str(user["_id"])})
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/auth/me", response_model=MeResponse)
def me(current_user: dict = Depends(get_current_user)):
    return {"user": UserOut.from_document(current_user)}


# User profile
@app.put("/users/profile", response_model=ProfileResponse)
def update_profile(profile: ProfileUpdate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    changes = {k: v for k, v in profile.model_dump(exclude_unset=True).items() if v is not None}
    if "email" in changes and changes["email"] != current_user["email"]:
        if get_user_by_email(db, changes["email"]):
            raise HTTPException(status_code=400, detail="Email already registered")
    if changes:
        changes["updated_at"] = utcnow()
        db["user"].update_one({"_id": current_user["_id"]}, {"$set": changes})
    user = db["user"].find_one({"_id": current_user["_id"]})
    return {"message": "Profile updated successfully", "user": UserOut.from_document(user)}


@app.put("/users/password")
def update_password(passwords: PasswordUpdate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    if not verify_password(passwords.current_password, current_user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": current_user["_id"]},
        {"$set": {"password_hash": get_password_hash(passwords.new_password), "updated_at": utcnow()}},
    )
    logger.info("Password changed for user %s", current_user["_id"])
    return {"message": "Password updated successfully"}


# Transaction endpoints
@app.get("/transactions", response_model=TransactionPage)
def list_user_transactions(
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    category: Optional[str] = None,
    type: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return list_transactions(
        db["transaction"],
        current_user["_id"],
        category=category,
        tx_type=type,
        start=parse_date_bound(start_date),
        end=parse_date_bound(end_date, end=True),
        page=page,
        limit=limit,
    )


@app.get("/transactions/recent", response_model=List[TransactionOut])
def list_recent_transactions(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return recent_transactions(db["transaction"], current_user["_id"])


@app.get("/transactions/summary", response_model=Summary)
def transactions_summary(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    start = parse_date_bound(start_date)
    end = parse_date_bound(end_date, end=True)
    return summarize(db["transaction"], current_user["_id"], start, end)


@app.get("/transactions/category-breakdown", response_model=List[CategoryTotal])
def transactions_category_breakdown(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return category_breakdown(db["transaction"], current_user["_id"])


@app.get("/transactions/monthly-spending", response_model=List[MonthlyTotal])
def transactions_monthly_spending(
    months: int = DEFAULT_MONTHS,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return monthly_spending(db["transaction"], current_user["_id"], months)


@app.get("/transactions/{tx_id}", response_model=TransactionOut)
def read_transaction(tx_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return get_transaction(db["transaction"], current_user["_id"], tx_id)


@app.post("/transactions", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def add_transaction(tx: TransactionCreate, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    return create_transaction(db["transaction"], current_user["_id"], tx)


@app.put("/transactions/{tx_id}", response_model=TransactionOut)
def edit_transaction(
    tx_id: str,
    tx: TransactionUpdate,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return update_transaction(db["transaction"], current_user["_id"], tx_id, tx)


@app.delete("/transactions/{tx_id}", response_model=DeleteResponse)
def remove_transaction(tx_id: str, current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    delete_transaction(db["transaction"], current_user["_id"], tx_id)
    return DeleteResponse()


# Budget
@app.get("/budget/status", response_model=BudgetStatus)
def budget_status(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    start = parse_date_bound(start_date)
    end = parse_date_bound(end_date, end=True)
    if start is None and end is None:
        start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    summary = summarize(db["transaction"], current_user["_id"], start, end)
    return evaluate_budget(summary.total_expenses, current_user.get("monthly_budget", 0))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
