from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from database import get_db
from models import User
from services.accounts import AccountService, public_profile
from services.exceptions import AccountNotFound, InvalidSession
from services.users import UserRepository
from utils.otp_service import OTPStore, get_notifier, get_otp_store
from utils.tokens import InvalidToken, decode_token


router = APIRouter(tags=["auth"])
bearer = HTTPBearer(auto_error=False)


def get_account_service(
    db: Session = Depends(get_db),
    otp_store: OTPStore = Depends(get_otp_store),
    notify: Callable[[str, str], None] = Depends(get_notifier),
) -> AccountService:
    return AccountService(UserRepository(db), otp_store, notify)


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds or not creds.credentials:
        raise InvalidSession("Missing Authorization token")
    try:
        user_id = decode_token(creds.credentials)
    except InvalidToken as e:
        raise InvalidSession("Invalid token") from e
    user = UserRepository(db).find_by_user_id(user_id)
    if not user:
        raise InvalidSession("User not found")
    return user


# Every field is optional here so that missing input is reported by the
# account service. Numbers are accepted where strings are expected, e.g.
# mobile numbers and codes posted as JSON numbers.
class RegisterIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: Optional[str] = None
    mobile: Optional[str] = None
    password: Optional[str] = None
    dob: Optional[str] = None
    gender: Optional[str] = None


class EmailOtpIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    email: Optional[str] = None
    otp: Optional[str] = None


class LoginIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    email: Optional[str] = None
    password: Optional[str] = None


class RequestOtpIn(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    email: Optional[str] = None


@router.post("/register", status_code=201)
def register(payload: RegisterIn, accounts: AccountService = Depends(get_account_service)):
    email = accounts.register(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        mobile=payload.mobile,
        password=payload.password,
        dob=payload.dob,
        gender=payload.gender,
    )
    return {
        "message": "Registration initiated. Please verify your email with the OTP sent.",
        "email": email,
    }


@router.post("/verify-email")
def verify_email(payload: EmailOtpIn, accounts: AccountService = Depends(get_account_service)):
    token, user = accounts.verify_email(email=payload.email, code=payload.otp)
    return {
        "message": "Email verified successfully",
        "token": token,
        "user": public_profile(user),
    }


@router.post("/login")
def login(payload: LoginIn, accounts: AccountService = Depends(get_account_service)):
    token, user = accounts.login(email=payload.email, password=payload.password)
    return {"token": token, "user": public_profile(user)}


@router.post("/request-otp")
def request_otp(payload: RequestOtpIn, accounts: AccountService = Depends(get_account_service)):
    try:
        email = accounts.request_otp(email=payload.email)
    except AccountNotFound as e:
        raise AccountNotFound(e.message, status_code=400) from e
    return {"message": "OTP sent successfully", "email": email}


@router.post("/verify-otp")
def verify_otp(payload: EmailOtpIn, accounts: AccountService = Depends(get_account_service)):
    token, user = accounts.verify_otp_login(email=payload.email, code=payload.otp)
    return {"token": token, "user": public_profile(user)}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"user": public_profile(current_user)}
