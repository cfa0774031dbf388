"""
Add subscription tables and the one-active-subscription-per-client index

Migration to add:
- clients, barbers, services, subscriptions, appointments, subscription_change_logs (if missing)
- uq_subscriptions_client_active: partial unique index on subscriptions(client_id)
  WHERE status = 'ACTIVE'

Run with: python migrations/add_subscription_tables.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text

from barbershop import models, models_subscription
from barbershop.database import Base, engine


def upgrade():
    """Create subscription tables and the partial unique index"""
    Base.metadata.create_all(
        bind=engine,
        tables=[
            models.Client.__table__,
            models.Barber.__table__,
            models.Service.__table__,
            models_subscription.Subscription.__table__,
            models_subscription.Appointment.__table__,
            models_subscription.SubscriptionChangeLog.__table__,
        ],
        checkfirst=True,
    )
    print("✅ Subscription tables present")

    with engine.connect() as conn:
        # The index cannot be built while a client holds two ACTIVE subscriptions
        duplicates = conn.execute(text("""
            SELECT client_id, COUNT(*)
            FROM subscriptions
            WHERE status = 'ACTIVE'
            GROUP BY client_id
            HAVING COUNT(*) > 1
        """)).fetchall()

        if duplicates:
            for client_id, count in duplicates:
                print(f"❌ Client {client_id} has {count} ACTIVE subscriptions")
            print("Resolve the duplicates (pause or cancel extras) and re-run the migration")
            sys.exit(1)

        conn.execute(text("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_subscriptions_client_active
            ON subscriptions (client_id)
            WHERE status = 'ACTIVE'
        """))
        conn.commit()
        print("✅ uq_subscriptions_client_active index present")
        print("\n✅ Migration completed successfully!")


def downgrade():
    """Drop the partial unique index (tables are kept: subscriptions are never deleted)"""
    with engine.connect() as conn:
        conn.execute(text("DROP INDEX IF EXISTS uq_subscriptions_client_active"))
        conn.commit()
        print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage subscription tables migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
