# marketplace/models/driver.py
# Анкета курьера. Брать заказы может только одобренный админом
# и не отключённый курьер.
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from marketplace.db.base import Base, utcnow

class DriverProfile(Base):
    __tablename__ = "driver_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    id_number = Column(String, unique=True, nullable=False)  # 13 цифр
    license_number = Column(String, nullable=False)
    vehicle_type = Column(String, nullable=False)
    vehicle_reg = Column(String, nullable=False)
    bank_name = Column(String, nullable=False)
    account_number = Column(String, nullable=False)
    branch_code = Column(String, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User")
