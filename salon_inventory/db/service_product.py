import uuid

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class ServiceProduct(Base):
    """Product usage (ml) a salon service needs per booking."""
    __tablename__ = "service_products"
    __table_args__ = (
        UniqueConstraint("service_id", "product_id", name="ux_service_products_service_product"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Services live in the booking system; only their id is referenced here.
    service_id = Column(Text, nullable=False, index=True)
    product_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    required_ml = Column(Integer, nullable=False, default=0)

    product = relationship("Product")
