# marketplace/services/drivers.py
# Регистрация курьеров и их модерация админом.
# Анкета создаётся неодобренной; после одобрения пользователь получает
# роль driver и может брать заказы, пока админ его не отключит.

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.core.errors import NotFoundError, PermissionDenied, ValidationError
from marketplace.db.base import utcnow
from marketplace.models.driver import DriverProfile
from marketplace.models.user import RoleEnum, User

logger = logging.getLogger(__name__)

ID_NUMBER_RE = re.compile(r"^\d{13}$")


@dataclass
class DriverApplication:
    name: str
    id_number: str
    license_number: str
    vehicle_type: str
    vehicle_reg: str
    bank_name: str
    account_number: str
    branch_code: str


def get_profile(db: Session, user_id: int) -> DriverProfile | None:
    return db.scalars(select(DriverProfile).where(DriverProfile.user_id == user_id)).first()


def register(db: Session, user: User, application: DriverApplication) -> DriverProfile:
    if user.role == RoleEnum.admin:
        raise PermissionDenied("Admins cannot register as drivers")
    if get_profile(db, user.id) is not None:
        raise ValidationError("You are already registered as a driver")
    fields = vars(application)
    if not all(str(value).strip() for value in fields.values()):
        raise ValidationError("All fields are required")
    if not ID_NUMBER_RE.match(application.id_number):
        raise ValidationError("ID number must be 13 digits")
    taken = db.scalars(select(DriverProfile).where(DriverProfile.id_number == application.id_number)).first()
    if taken is not None:
        raise ValidationError("This ID number is already registered")

    profile = DriverProfile(user_id=user.id, is_approved=False, is_active=True, **fields)
    db.add(profile)
    if not user.full_name:
        user.full_name = application.name
    db.commit()
    db.refresh(profile)
    logger.info(f"Driver application {profile.id} submitted by user {user.id}")
    return profile


def list_profiles(db: Session, approved: bool | None = None) -> list[DriverProfile]:
    """Анкеты курьеров, новые первыми; approved фильтрует по одобрению."""
    stmt = select(DriverProfile).order_by(DriverProfile.created_at.desc(), DriverProfile.id.desc())
    if approved is not None:
        stmt = stmt.where(DriverProfile.is_approved.is_(approved))
    return list(db.scalars(stmt))


def _get(db: Session, profile_id: int) -> DriverProfile:
    profile = db.get(DriverProfile, profile_id)
    if profile is None:
        raise NotFoundError("Driver profile not found")
    return profile


def approve(db: Session, profile_id: int, notifier=None) -> DriverProfile:
    profile = _get(db, profile_id)
    profile.is_approved = True
    profile.is_active = True
    profile.approved_at = utcnow()
    if profile.user.role != RoleEnum.admin:
        profile.user.role = RoleEnum.driver
    db.commit()
    db.refresh(profile)
    logger.info(f"Driver profile {profile.id} approved (user {profile.user_id})")
    if notifier is not None:
        notifier.driver_approved(profile)
    return profile


def reject(db: Session, profile_id: int) -> None:
    """Отклонённая анкета удаляется, пользователь может подать новую."""
    profile = _get(db, profile_id)
    db.delete(profile)
    db.commit()
    logger.info(f"Driver profile {profile_id} rejected")


def set_active(db: Session, profile_id: int, is_active: bool) -> DriverProfile:
    profile = _get(db, profile_id)
    profile.is_active = is_active
    db.commit()
    db.refresh(profile)
    logger.info(f"Driver profile {profile.id} {'activated' if is_active else 'deactivated'}")
    return profile


def ensure_can_deliver(db: Session, driver: User) -> None:
    """Брать заказы может только одобренный и активный курьер."""
    profile = get_profile(db, driver.id)
    if profile is None or not profile.is_approved:
        raise PermissionDenied("Driver not approved yet")
    if not profile.is_active:
        raise PermissionDenied("Driver account is deactivated")
