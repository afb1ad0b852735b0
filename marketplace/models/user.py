# marketplace/models/user.py
# Модель пользователя: phone, hashed_password, role, blacklisted.
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from marketplace.db.base import Base, utcnow
import enum

class RoleEnum(str, enum.Enum):
    customer = "customer"
    vendor = "vendor"
    driver = "driver"
    admin = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    role = Column(Enum(RoleEnum), default=RoleEnum.customer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    blacklisted = Column(Boolean, default=False)

    @property
    def display_name(self) -> str:
        return self.full_name or self.role.value.capitalize()
