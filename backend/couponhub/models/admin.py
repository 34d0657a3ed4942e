import uuid

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, validates

from couponhub.core import security
from couponhub.db.base import Base


class Admin(Base):
    __tablename__ = "admins"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(150), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    @validates("password_hash")
    def _hash_on_write(self, _key: str, value: str) -> str:
        # Seed scripts may hand over either a plaintext password or a bcrypt hash.
        return security.ensure_password_hash(value)
