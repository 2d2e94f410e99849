"""User model definition using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    text,
    true,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Identity provider subject (external source of truth)
    Column("open_id", String(64), nullable=False, unique=True, index=True),
    Column("name", Text),
    Column("email", String(320), index=True),
    Column("login_method", String(64)),
    Column("role", String(20), nullable=False, server_default=text("'user'")),
    # Account state
    Column("is_active", Boolean, nullable=False, server_default=true()),
    # Audit
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("last_signed_in", DateTime(timezone=True), nullable=True),
    CheckConstraint("role IN ('user', 'admin')", name="users_role_check"),
)
