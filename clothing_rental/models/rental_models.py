from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


class ClothingItem(Base):
    __tablename__ = "clothing_items"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    size = Column(String(50), nullable=False)
    category = Column(String(100), nullable=False)
    condition = Column(String(20), nullable=False)
    rental_price = Column(Numeric(10, 2), nullable=False)
    available = Column(Boolean, nullable=False, default=True)
    image_url = Column(String(500))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Rentals = relationship("Rental", back_populates="ClothingItem")
    RentalItems = relationship("RentalItem", back_populates="ClothingItem")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    address = Column(String(500))
    user_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Rentals = relationship("Rental", back_populates="Customer")


class Rental(Base):
    __tablename__ = "rentals"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    clothing_item_id = Column(Integer, ForeignKey("clothing_items.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(30), nullable=False, default="active")
    total_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    return_condition = Column(String(30))
    return_notes = Column(Text)
    additional_fees = Column(Numeric(10, 2))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Customer = relationship("Customer", back_populates="Rentals")
    ClothingItem = relationship("ClothingItem", back_populates="Rentals")
    RentalItems = relationship(
        "RentalItem",
        back_populates="Rental",
        cascade="all, delete-orphan",
        order_by="RentalItem.id",
    )


class RentalItem(Base):
    __tablename__ = "rental_items"

    id = Column(Integer, primary_key=True)
    rental_id = Column(Integer, ForeignKey("rentals.id", ondelete="CASCADE"), nullable=False)
    clothing_item_id = Column(Integer, ForeignKey("clothing_items.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    Rental = relationship("Rental", back_populates="RentalItems")
    ClothingItem = relationship("ClothingItem", back_populates="RentalItems")
