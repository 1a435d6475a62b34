from datetime import timedelta
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import get_settings
from database import get_db, utcnow, TokenPurpose, User
from emails import AuthEmail, get_mailer
from schemas import (
    CurrentUser,
    EmailIn,
    ForgotPasswordResponse,
    LoginResponse,
    Message,
    NewPassword,
    PasswordCheck,
    PasswordUpdate,
    TokenIn,
    UserCreate,
    UserLogin,
    UserProfile,
    UserUpdate,
)
from security import check_password, generate_jwt, generate_token, hash_password, verify_jwt

logger = logging.getLogger("budget-api.auth")

TOKEN_ATTEMPTS = 10

auth_router = APIRouter()

# Every /api/auth route draws from one per-client budget
limiter = Limiter(
    key_func=get_remote_address, enabled=get_settings().rate_limit_enabled
)
auth_limit = limiter.shared_limit(lambda: get_settings().auth_rate_limit, scope="auth")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")


def _commit(db: Session, detail: str):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Storage failure: %s", detail)
        raise HTTPException(status_code=500, detail=detail)


def _commit_unique_email(db: Session, detail: str):
    # The unique index on users.email settles concurrent writers
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already in use")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Storage failure: %s", detail)
        raise HTTPException(status_code=500, detail=detail)


def _token_expired(user: User) -> bool:
    ttl = get_settings().token_expire_minutes
    if not ttl or user.token_issued_at is None:
        return False
    return user.token_issued_at + timedelta(minutes=ttl) < utcnow()


def _find_user_by_token(db: Session, token: str, purpose: TokenPurpose) -> Optional[User]:
    user = (
        db.query(User)
        .filter(User.token == token, User.token_purpose == purpose)
        .first()
    )
    if user is None or _token_expired(user):
        return None
    return user


def _issue_token(db: Session, user: User, purpose: TokenPurpose) -> str:
    """Give the user a fresh code that no other account currently holds."""
    for _ in range(TOKEN_ATTEMPTS):
        value = generate_token()
        taken = db.query(User.id).filter(User.token == value, User.id != user.id).first()
        if taken is None:
            user.issue_token(value, purpose)
            return value
    logger.error("Could not find a free %s token after %d attempts", purpose.value, TOKEN_ATTEMPTS)
    raise HTTPException(status_code=500, detail="Could not issue a token")


def _load_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def clear_expired_tokens(db: Session) -> int:
    """Drop confirmation/reset codes older than the configured lifetime."""
    ttl = get_settings().token_expire_minutes
    if not ttl:
        return 0
    cutoff = utcnow() - timedelta(minutes=ttl)
    expired = (
        db.query(User)
        .filter(User.token.isnot(None), User.token_issued_at < cutoff)
        .all()
    )
    for user in expired:
        user.clear_token()
    db.commit()
    return len(expired)


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = verify_jwt(token)
        user_id = int(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (jwt.InvalidTokenError, ValueError):
        raise credentials_exception

    try:
        user = db.get(User, user_id)
    except SQLAlchemyError:
        logger.exception("Storage failure while resolving user %s", user_id)
        raise HTTPException(status_code=500, detail="Could not load the current user")
    if user is None:
        raise credentials_exception
    return CurrentUser.model_validate(user)


@auth_router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
@auth_limit
def register(
    request: Request,
    user: UserCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: AuthEmail = Depends(get_mailer),
):
    db_user = db.query(User).filter(User.email == user.email).first()
    if db_user:
        raise HTTPException(status_code=409, detail="Email already in use")

    new_user = User(
        name=user.name,
        email=user.email,
        password=hash_password(user.password),
        confirmed=False,
    )
    token = _issue_token(db, new_user, TokenPurpose.CONFIRM)
    db.add(new_user)
    _commit_unique_email(db, "Account can't be created")
    db.refresh(new_user)
    logger.info("Account created: user_id=%s", new_user.id)

    background_tasks.add_task(
        mailer.send_confirmation_email,
        name=new_user.name,
        email=new_user.email,
        token=token,
    )
    return new_user


@auth_router.post("/confirm-account", response_model=Message)
@auth_limit
def confirm_account(request: Request, body: TokenIn, db: Session = Depends(get_db)):
    user = _find_user_by_token(db, body.token, TokenPurpose.CONFIRM)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")

    user.confirmed = True
    user.clear_token()
    _commit(db, "Account can't be confirmed")
    logger.info("Account confirmed: user_id=%s", user.id)
    return Message(message="Account confirmed successfully")


@auth_router.post("/login", response_model=LoginResponse)
@auth_limit
def login(request: Request, body: UserLogin, db: Session = Depends(get_db)):
    # Each stage answers with its own status code
    db_user = db.query(User).filter(User.email == body.email).first()
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")

    if not db_user.confirmed:
        logger.info("Login refused, account not confirmed: user_id=%s", db_user.id)
        raise HTTPException(status_code=403, detail="Account not confirmed")

    if not check_password(body.password, db_user.password):
        logger.info("Login refused, wrong password: user_id=%s", db_user.id)
        raise HTTPException(status_code=401, detail="Incorrect password")

    return LoginResponse(
        name=db_user.name, email=db_user.email, token=generate_jwt(db_user.id)
    )


@auth_router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    response_model_exclude_none=True,
)
@auth_limit
def forgot_password(
    request: Request,
    body: EmailIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: AuthEmail = Depends(get_mailer),
):
    user = db.query(User).filter(User.email == body.email).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.confirmed:
        token = _issue_token(db, user, TokenPurpose.RESET)
        send = mailer.send_password_reset_token
    else:
        # An unconfirmed account gets a fresh confirmation code instead, so a
        # lost or expired code never locks it out
        token = _issue_token(db, user, TokenPurpose.CONFIRM)
        send = mailer.send_confirmation_email
    _commit(db, "Password reset can't be requested")
    logger.info(
        "Password reset requested: user_id=%s confirmed=%s", user.id, user.confirmed
    )

    background_tasks.add_task(
        send,
        name=user.name,
        email=user.email,
        token=token,
    )
    response = ForgotPasswordResponse(email=user.email)
    if get_settings().expose_reset_token:
        response.token = token
    return response


@auth_router.post("/validate-token", response_model=Message)
@auth_limit
def validate_token(request: Request, body: TokenIn, db: Session = Depends(get_db)):
    if not _find_user_by_token(db, body.token, TokenPurpose.RESET):
        raise HTTPException(status_code=404, detail="Invalid token")
    return Message(message="Valid token, set your new password")


@auth_router.post("/reset-password/{token}", response_model=Message)
@auth_limit
def reset_password_with_token(
    request: Request,
    body: NewPassword,
    token: str = Path(pattern=r"^\d{6}$"),
    db: Session = Depends(get_db),
):
    user = _find_user_by_token(db, token, TokenPurpose.RESET)
    if not user:
        raise HTTPException(status_code=404, detail="Invalid token")

    user.password = hash_password(body.password)
    user.clear_token()
    _commit(db, "Password can't be reset")
    logger.info("Password reset: user_id=%s", user.id)
    return Message(message="Password reset successfully")


@auth_router.get("/user", response_model=CurrentUser)
@auth_limit
def get_user(request: Request, current_user: CurrentUser = Depends(get_current_user)):
    return current_user


@auth_router.post("/update-password", response_model=Message)
@auth_limit
def update_current_user_password(
    request: Request,
    body: PasswordUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = _load_user(db, current_user.id)
    if not check_password(body.current_password, user.password):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    user.password = hash_password(body.password)
    _commit(db, "Password can't be updated")
    return Message(message="Password updated successfully")


@auth_router.post("/check-password", response_model=Message)
@auth_limit
def check_current_password(
    request: Request,
    body: PasswordCheck,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = _load_user(db, current_user.id)
    if not check_password(body.password, user.password):
        raise HTTPException(status_code=401, detail="Incorrect password")
    return Message(message="Correct password")


@auth_router.put("/user", response_model=CurrentUser)
@auth_limit
def update_user(
    request: Request,
    body: UserUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    taken = (
        db.query(User)
        .filter(User.email == body.email, User.id != current_user.id)
        .first()
    )
    if taken:
        raise HTTPException(status_code=409, detail="Email already in use")

    user = _load_user(db, current_user.id)
    user.name = body.name
    user.email = body.email
    _commit_unique_email(db, "Profile can't be updated")
    db.refresh(user)
    return CurrentUser.model_validate(user)
