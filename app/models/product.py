from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..db.base import Base
from ..enums import ProductStatus
from ..models.base import TimeStampMixin



class Product(Base, TimeStampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    sku = Column(String, nullable=False, unique=True)
    price = Column(Float, nullable=False)
    status = Column(Enum(ProductStatus), nullable=False, default=ProductStatus.DRAFT)
    # products are owned by the product domain; categories only ever read this column
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    category = relationship("Category", back_populates="products")


    def __repr__(self):
        return f"<Product(id={self.id}, category_id={self.category_id}, status={self.status})>"
