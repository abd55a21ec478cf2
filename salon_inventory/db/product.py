import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Product(Base):
    """Bottle ledger for one product.

    Stock is kept as sealed bottles plus the remainder (ml) of the single
    bottle currently in use. Total ml is always derived, never stored.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("container_capacity_ml > 0", name="ck_products_capacity_positive"),
        CheckConstraint("sealed_containers >= 0", name="ck_products_sealed_non_negative"),
        CheckConstraint(
            "open_container_remaining_ml >= 0 AND open_container_remaining_ml <= container_capacity_ml",
            name="ck_products_open_within_capacity",
        ),
        CheckConstraint("min_threshold >= 0", name="ck_products_threshold_non_negative"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    brand = Column(String, nullable=True)
    category = Column(String, nullable=True)

    container_capacity_ml = Column(Integer, nullable=False)
    sealed_containers = Column(Integer, nullable=False, default=0)
    open_container_remaining_ml = Column(Integer, nullable=False, default=0)
    min_threshold = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    consumption_entries = relationship("ConsumptionLogEntry", back_populates="product")
    restock_entries = relationship("RestockEntry", back_populates="product")
