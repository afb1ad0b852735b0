# marketplace/api/auth.py
# Роуты для регистрации и получения JWT токена.
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session
from fastapi.security import OAuth2PasswordRequestForm
from datetime import timedelta

from marketplace.core import security
from marketplace.core.config import settings
from marketplace.core.rate_limit import RateLimitPresets, rate_limit
from marketplace.models.user import User, RoleEnum

router = APIRouter()

# админов создают вручную, через регистрацию их не получить
SELF_SERVICE_ROLES = (RoleEnum.customer, RoleEnum.vendor, RoleEnum.driver)

@router.post("/register", dependencies=[Depends(rate_limit(RateLimitPresets.auth, "register"))])
def register(
    phone: str,
    password: str,
    full_name: str | None = None,
    role: RoleEnum = RoleEnum.customer,
    db: Session = Depends(security.get_db),
):
    """
    Регистрация пользователя: phone + password.
    По умолчанию роль = customer.
    """
    if role not in SELF_SERVICE_ROLES:
        raise HTTPException(status_code=403, detail="Role cannot be self-assigned")
    existing = db.scalars(select(User).where(User.phone == phone)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Phone already registered")
    hashed = security.get_password_hash(password)
    user = User(phone=phone, hashed_password=hashed, full_name=full_name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return {"id": user.id, "phone": user.phone, "role": user.role.value}

@router.post("/token", dependencies=[Depends(rate_limit(RateLimitPresets.strict, "login"))])
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(security.get_db)):
    """
    Логин: возвращает access_token (JWT).
    OAuth2PasswordRequestForm ожидает username и password, phone передаётся как username.
    """
    user = db.scalars(select(User).where(User.phone == form_data.username)).first()
    if not user or not user.hashed_password or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Incorrect credentials")
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = security.create_access_token(subject=str(user.id), expires_delta=access_token_expires)
    return {"access_token": token, "token_type": "bearer"}

@router.get("/session")
def session(current_user: User = Depends(security.get_current_user)):
    """Кто я: пользователь по текущему токену."""
    return {
        "id": current_user.id,
        "phone": current_user.phone,
        "fullName": current_user.full_name,
        "role": current_user.role.value,
    }
