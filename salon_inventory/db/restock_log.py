import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class RestockEntry(Base):
    __tablename__ = "restock_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    containers_added = Column(Integer, nullable=False)
    sealed_containers_before = Column(Integer, nullable=False)
    sealed_containers_after = Column(Integer, nullable=False)

    supplier = Column(String, nullable=True)
    invoice_number = Column(String, nullable=True)
    cost_per_container = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)
    actor_id = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    product = relationship("Product", back_populates="restock_entries")
