import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class ConsumptionLogEntry(Base):
    """Append-only record of one successful consumption (before/after snapshots)."""
    __tablename__ = "consumption_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    consumption_type = Column(Text, nullable=False, default="service")
    ml_consumed = Column(Integer, nullable=False)
    containers_opened = Column(Integer, nullable=False, default=0)

    sealed_containers_before = Column(Integer, nullable=False)
    sealed_containers_after = Column(Integer, nullable=False)
    open_ml_before = Column(Integer, nullable=False)
    open_ml_after = Column(Integer, nullable=False)

    # Correlation ids, stored as given and never interpreted
    sale_id = Column(Text, nullable=True, index=True)
    service_id = Column(Text, nullable=True)
    staff_id = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    product = relationship("Product", back_populates="consumption_entries")
