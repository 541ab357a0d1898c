# dentalshop/models/product.py
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, CheckConstraint, func
)
from sqlalchemy.orm import relationship
from dentalshop.database import Base

# Model Product
# Catalog entry for a piece of dental equipment. The catalog is the only owner
# of price and stock; carts and orders keep point-in-time copies.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)
    category = Column(String, nullable=True, index=True)

    price = Column(Numeric(12, 2), CheckConstraint("price >= 0"), nullable=False)

    # On-hand quantity, decremented only by payment reconciliation
    stock = Column(Integer, nullable=False, default=0)

    image_url = Column(String, nullable=True)
    featured = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    inclusions = relationship(
        "ProductInclusion",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductInclusion.id",
    )


# Optional add-on sold together with a product (warranty, installation, ...)
class ProductInclusion(Base):
    __tablename__ = "product_inclusions"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    price = Column(Numeric(12, 2), CheckConstraint("price >= 0"), nullable=False)

    product = relationship("Product", back_populates="inclusions")
