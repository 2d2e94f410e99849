"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.newsletter import metadata as newsletter_metadata
from app.models.newsletter import newsletter_subscribers
from app.models.notification_logs import metadata as notification_logs_metadata
from app.models.notification_logs import notification_logs
from app.models.payments import metadata as payments_metadata
from app.models.payments import mpesa_payments, stripe_payments
from app.models.users import metadata as users_metadata
from app.models.users import users


def combined_metadata() -> MetaData:
    """Collect every table into a single MetaData for create_all/drop_all."""
    metadata = MetaData()
    for source in (
        users_metadata,
        appointments_metadata,
        payments_metadata,
        notification_logs_metadata,
        newsletter_metadata,
    ):
        for table in source.tables.values():
            table.to_metadata(metadata)
    return metadata


__all__ = [
    "appointments",
    "combined_metadata",
    "mpesa_payments",
    "newsletter_subscribers",
    "notification_logs",
    "stripe_payments",
    "users",
]
