# dentalshop/models/cart.py
from sqlalchemy import Column, String, Text, DateTime, func
from dentalshop.database import Base

# One persisted cart snapshot per shopper identity ("cart_<identity>")
class CartSlot(Base):
    __tablename__ = "cart_slots"

    slot_key = Column(String(200), primary_key=True)
    payload = Column(Text, nullable=False) # JSON snapshot of the cart state
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
