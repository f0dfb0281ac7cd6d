"""Stripe-backed finance rows: customers, subscriptions, invoices and balances.

Amounts are integer minor units (cents). Balance adjustments are not idempotent
on their own; callers rely on the event writer running each event's side
effects once.
"""

from datetime import datetime

import asyncpg


async def upsert_customer(
    conn: asyncpg.Connection,
    organization_id: str,
    external_id: str,
    *,
    email: str | None,
    name: str | None,
) -> None:
    await conn.execute(
        """
        INSERT INTO customers (organization_id, external_id, email, name)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (organization_id, external_id) DO UPDATE SET
            email = EXCLUDED.email,
            name = EXCLUDED.name
        """,
        organization_id,
        external_id,
        email,
        name,
    )


async def mark_customer_deleted(
    conn: asyncpg.Connection, organization_id: str, external_id: str
) -> None:
    await conn.execute(
        """
        INSERT INTO customers (organization_id, external_id, deleted_at)
        VALUES ($1, $2, NOW())
        ON CONFLICT (organization_id, external_id) DO UPDATE SET
            deleted_at = COALESCE(customers.deleted_at, NOW())
        """,
        organization_id,
        external_id,
    )


async def upsert_subscription(
    conn: asyncpg.Connection,
    organization_id: str,
    external_id: str,
    *,
    customer_external_id: str | None,
    status: str,
    amount_cents: int,
    currency: str,
    interval: str | None,
    current_period_end: datetime | None,
    canceled_at: datetime | None,
    provider_updated_at: datetime,
) -> bool:
    """Last write wins by provider_updated_at (the Stripe event's created time).

    Returns False when a newer version of the subscription is already stored.
    """
    result = await conn.execute(
        """
        INSERT INTO finance_subscriptions (
            organization_id, external_id, customer_external_id, status, amount_cents,
            currency, interval, current_period_end, canceled_at, provider_updated_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        ON CONFLICT (organization_id, external_id) DO UPDATE SET
            customer_external_id = EXCLUDED.customer_external_id,
            status = EXCLUDED.status,
            amount_cents = EXCLUDED.amount_cents,
            currency = EXCLUDED.currency,
            interval = EXCLUDED.interval,
            current_period_end = EXCLUDED.current_period_end,
            canceled_at = EXCLUDED.canceled_at,
            provider_updated_at = EXCLUDED.provider_updated_at,
            updated_at = NOW()
        WHERE finance_subscriptions.provider_updated_at IS NULL
           OR finance_subscriptions.provider_updated_at <= EXCLUDED.provider_updated_at
        """,
        organization_id,
        external_id,
        customer_external_id,
        status,
        amount_cents,
        currency,
        interval,
        current_period_end,
        canceled_at,
        provider_updated_at,
    )
    return result != "INSERT 0 0"


async def cancel_customer_subscriptions(
    conn: asyncpg.Connection, organization_id: str, customer_external_id: str
) -> int:
    result = await conn.execute(
        """
        UPDATE finance_subscriptions
        SET status = 'canceled', canceled_at = COALESCE(canceled_at, NOW()), updated_at = NOW()
        WHERE organization_id = $1 AND customer_external_id = $2 AND status <> 'canceled'
        """,
        organization_id,
        customer_external_id,
    )
    return int(result.split()[-1])


async def upsert_invoice(
    conn: asyncpg.Connection,
    organization_id: str,
    external_id: str,
    *,
    customer_external_id: str | None,
    subscription_external_id: str | None,
    status: str,
    amount_due_cents: int,
    amount_paid_cents: int,
    currency: str,
    paid_at: datetime | None,
) -> None:
    await conn.execute(
        """
        INSERT INTO invoices (
            organization_id, external_id, customer_external_id, subscription_external_id,
            status, amount_due_cents, amount_paid_cents, currency, paid_at
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        ON CONFLICT (organization_id, external_id) DO UPDATE SET
            status = EXCLUDED.status,
            amount_due_cents = EXCLUDED.amount_due_cents,
            amount_paid_cents = EXCLUDED.amount_paid_cents,
            paid_at = COALESCE(EXCLUDED.paid_at, invoices.paid_at),
            updated_at = NOW()
        """,
        organization_id,
        external_id,
        customer_external_id,
        subscription_external_id,
        status,
        amount_due_cents,
        amount_paid_cents,
        currency,
        paid_at,
    )


async def adjust_balance(
    conn: asyncpg.Connection, organization_id: str, currency: str, delta_cents: int
) -> int:
    """Add delta_cents (may be negative) to the available balance and return the new value."""
    return await conn.fetchval(
        """
        INSERT INTO balances (organization_id, currency, available_cents)
        VALUES ($1, $2, $3)
        ON CONFLICT (organization_id, currency) DO UPDATE SET
            available_cents = balances.available_cents + EXCLUDED.available_cents,
            updated_at = NOW()
        RETURNING available_cents
        """,
        organization_id,
        currency,
        delta_cents,
    )


async def set_balance(
    conn: asyncpg.Connection,
    organization_id: str,
    currency: str,
    available_cents: int,
    pending_cents: int,
) -> None:
    """Overwrite a currency balance with the provider-reported figures."""
    await conn.execute(
        """
        INSERT INTO balances (organization_id, currency, available_cents, pending_cents)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (organization_id, currency) DO UPDATE SET
            available_cents = EXCLUDED.available_cents,
            pending_cents = EXCLUDED.pending_cents,
            updated_at = NOW()
        """,
        organization_id,
        currency,
        available_cents,
        pending_cents,
    )
