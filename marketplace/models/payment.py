# marketplace/models/payment.py
# Журнал обработанных webhook событий платёжного шлюза (ключ = webhook-id).
from sqlalchemy import Column, String, DateTime
from marketplace.db.base import Base, utcnow

class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True)
    event_type = Column(String, nullable=True)
    checkout_id = Column(String, nullable=True)
    received_at = Column(DateTime, default=utcnow)
