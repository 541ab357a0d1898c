# dentalshop/models/order.py
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, JSON, func
from sqlalchemy.orm import relationship
from dentalshop.database import Base
import enum

# Order lifecycle. PAID is set by payment reconciliation only,
# the remaining transitions are administrative.
class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)

    # Quoted amount, fixed at creation time
    total = Column(Numeric(12, 2), nullable=False)

    # Shipping / contact snapshot
    customer_name = Column(String, nullable=False)
    customer_address = Column(String, nullable=False)
    customer_mobile = Column(String, nullable=False)
    customer_zip_code = Column(String, nullable=False)

    # Provider correlation ids and timestamps
    payment_info = Column(JSON, nullable=False, default=dict)

    # Hash of shopper + cart + customer info, used to reuse a pending order on checkout retry
    checkout_fingerprint = Column(String(64), index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    user = relationship("User")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    # Weak reference: a product with order history cannot be deleted
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), index=True, nullable=False)
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False) # Unit price quoted to the shopper

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
    included_items = relationship(
        "OrderItemInclusion",
        back_populates="order_item",
        cascade="all, delete-orphan",
        order_by="OrderItemInclusion.id",
    )


# Copy of a selected inclusion, independent from the live ProductInclusion rows
class OrderItemInclusion(Base):
    __tablename__ = "order_item_inclusions"

    id = Column(Integer, primary_key=True, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), index=True, nullable=False)
    inclusion_id = Column(Integer, nullable=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    price = Column(Numeric(12, 2), nullable=False)

    order_item = relationship("OrderItem", back_populates="included_items")
