#!/usr/bin/env python3
"""
Seed demo bookings for one tenant and print an access token for trying the API.

Bookings cover the cases the matcher distinguishes: exact amount and reference,
near amounts, bookings outside the candidate window and non-paid bookings.

Usage:
    python scripts/seed_demo_data.py --tenant 1 --dry-run   # no DB writes
    python scripts/seed_demo_data.py --tenant 1 --confirm   # write to DB

Requires: migrations applied (alembic upgrade head), DB reachable.
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth import UserRole, create_access_token
from src.core.config import settings
from src.core.database.session import async_session
from src.modules.bookings.models import Booking, BookingPaymentStatus, BookingStatus

# (booking number, customer, amount, days before today, status, payment status)
DEMO_BOOKINGS = [
    ("BK1001", "John Doe", Decimal("1500.00"), 2, BookingStatus.CONFIRMED, BookingPaymentStatus.PAID),
    ("BK1002", "Amina Wanjiru", Decimal("820.50"), 3, BookingStatus.COMPLETED, BookingPaymentStatus.PAID),
    ("BK1003", "Peter Otieno", Decimal("2400.00"), 5, BookingStatus.CONFIRMED, BookingPaymentStatus.PARTIAL),
    ("BK1004", "Grace Muthoni", Decimal("640.00"), 6, BookingStatus.CONFIRMED, BookingPaymentStatus.PAID),
    ("BK1005", "David Kimani", Decimal("1200.00"), 30, BookingStatus.COMPLETED, BookingPaymentStatus.PAID),
    ("BK1006", "Sarah Njeri", Decimal("950.00"), 1, BookingStatus.PENDING, BookingPaymentStatus.UNPAID),
    ("BK1007", "Brian Ochieng", Decimal("3100.00"), 4, BookingStatus.CANCELLED, BookingPaymentStatus.REFUNDED),
]


async def seed_bookings(session: AsyncSession, tenant_id: int) -> int:
    """Create demo bookings that do not exist yet. Returns the number created."""
    existing = set(
        (
            await session.execute(
                select(Booking.booking_number).where(Booking.tenant_id == tenant_id)
            )
        ).scalars()
    )
    today = date.today()
    created = 0
    for number, customer, amount, days_ago, status, payment_status in DEMO_BOOKINGS:
        if number in existing:
            continue
        session.add(
            Booking(
                tenant_id=tenant_id,
                booking_number=number,
                customer_name=customer,
                total_amount=amount,
                booking_date=today - timedelta(days=days_ago),
                status=status.value,
                payment_status=payment_status.value,
            )
        )
        created += 1
    await session.flush()
    print(f"  Created {created} bookings ({len(existing)} already present).")
    return created


async def run_seed(session: AsyncSession, tenant_id: int, dry_run: bool) -> None:
    await seed_bookings(session, tenant_id)
    if dry_run:
        await session.rollback()
        print("\n[DRY-RUN] Rolled back, no data written.")
    else:
        await session.commit()
        print("\nSeed completed successfully.")


async def main() -> None:
    import argparse
    parser = argparse.ArgumentParser(description="Seed demo bookings for bank reconciliation")
    parser.add_argument("--tenant", type=int, default=1, help="Tenant id to seed")
    parser.add_argument("--user", type=int, default=1, help="User id for the printed token")
    parser.add_argument("--dry-run", action="store_true", help="Do not commit")
    parser.add_argument("--confirm", action="store_true", help="Commit changes")
    args = parser.parse_args()
    if not args.dry_run and not args.confirm:
        print("Use --dry-run or --confirm")
        sys.exit(1)

    print("Database:", settings.database_url.split("@")[-1] if "@" in settings.database_url else "?")
    print("Mode:", "DRY-RUN" if args.dry_run else "CONFIRM")
    async with async_session() as session:
        await run_seed(session, args.tenant, dry_run=args.dry_run)

    token = create_access_token(args.user, args.tenant, UserRole.ACCOUNTANT.value)
    print(f"Accountant token for tenant {args.tenant}:\n{token}")
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
