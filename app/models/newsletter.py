"""Newsletter subscribers table."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    func,
    text,
)

metadata = MetaData()

newsletter_subscribers = Table(
    "newsletter_subscribers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("subscription_status", String(20), nullable=False, server_default=text("'active'")),
    Column("subscribed_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("unsubscribed_at", DateTime(timezone=True), nullable=True),
    Column("last_email_sent_at", DateTime(timezone=True), nullable=True),
    Column("email_count", Integer, nullable=False, server_default=text("0")),
    CheckConstraint(
        "subscription_status IN ('active', 'unsubscribed', 'bounced')",
        name="newsletter_subscribers_status_check",
    ),
)
