"""Apply Stripe events to customers, subscriptions, invoices and balances."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import asyncpg

from connectors.base.event_effects import EffectContext
from connectors.base.utils import parse_provider_timestamp
from src.database import finance
from src.database.events import StoredEvent
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _external_id(value: str | dict | None) -> str | None:
    """Stripe expands related objects on request; accept either form."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _subscription_amount(subscription: dict) -> tuple[int, str | None]:
    """Sum of unit_amount * quantity across subscription items, and the billing interval."""
    total = 0
    interval = None
    for item in (subscription.get("items") or {}).get("data") or []:
        price = item.get("price") or item.get("plan") or {}
        total += int(price.get("unit_amount") or price.get("amount") or 0) * int(
            item.get("quantity") or 1
        )
        recurring = price.get("recurring") or {}
        interval = interval or recurring.get("interval") or price.get("interval")
    return total, interval


async def _upsert_subscription(
    conn: asyncpg.Connection,
    context: EffectContext,
    event: dict,
    data_object: dict,
    status: str | None = None,
) -> None:
    amount_cents, interval = _subscription_amount(data_object)
    applied = await finance.upsert_subscription(
        conn,
        context.organization_id,
        data_object["id"],
        customer_external_id=_external_id(data_object.get("customer")),
        status=status or data_object.get("status") or "incomplete",
        amount_cents=amount_cents,
        currency=(data_object.get("currency") or "usd").lower(),
        interval=interval,
        current_period_end=parse_provider_timestamp(data_object.get("current_period_end")),
        canceled_at=parse_provider_timestamp(
            data_object.get("canceled_at") or data_object.get("ended_at")
        ),
        provider_updated_at=parse_provider_timestamp(event.get("created"), default=datetime.now(UTC)),
    )
    if not applied:
        logger.info(
            "Skipped out-of-order subscription update",
            subscription_id=data_object["id"],
            event_id=event.get("id"),
        )


async def _apply_subscription_upsert(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await _upsert_subscription(conn, context, event, data_object)


async def _apply_subscription_deleted(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await _upsert_subscription(conn, context, event, data_object, status="canceled")


async def _upsert_invoice(
    conn: asyncpg.Connection, context: EffectContext, data_object: dict, status: str
) -> None:
    paid_at = None
    if status == "paid":
        transitions = data_object.get("status_transitions") or {}
        paid_at = parse_provider_timestamp(transitions.get("paid_at") or data_object.get("created"))
    await finance.upsert_invoice(
        conn,
        context.organization_id,
        data_object["id"],
        customer_external_id=_external_id(data_object.get("customer")),
        subscription_external_id=_external_id(data_object.get("subscription")),
        status=status,
        amount_due_cents=int(data_object.get("amount_due") or 0),
        amount_paid_cents=int(data_object.get("amount_paid") or 0),
        currency=(data_object.get("currency") or "usd").lower(),
        paid_at=paid_at,
    )


async def _apply_invoice_paid(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await _upsert_invoice(conn, context, data_object, "paid")
    amount_paid = int(data_object.get("amount_paid") or 0)
    if amount_paid:
        currency = (data_object.get("currency") or "usd").lower()
        available = await finance.adjust_balance(
            conn, context.organization_id, currency, amount_paid
        )
        logger.info(
            "Credited balance for paid invoice",
            invoice_id=data_object["id"],
            amount_cents=amount_paid,
            available_cents=available,
        )


async def _apply_invoice_payment_succeeded(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    # Stripe sends invoice.paid for the same payment; only that event credits the balance
    await _upsert_invoice(conn, context, data_object, "paid")


async def _apply_invoice_payment_failed(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await _upsert_invoice(conn, context, data_object, "failed")


async def _apply_charge_refunded(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    # amount_refunded is cumulative; partial refunds arrive as separate events
    previous = (event.get("data") or {}).get("previous_attributes") or {}
    refunded_now = int(data_object.get("amount_refunded") or 0) - int(
        previous.get("amount_refunded") or 0
    )
    if refunded_now <= 0:
        return
    currency = (data_object.get("currency") or "usd").lower()
    await finance.adjust_balance(conn, context.organization_id, currency, -refunded_now)


async def _apply_customer_upsert(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await finance.upsert_customer(
        conn,
        context.organization_id,
        data_object["id"],
        email=data_object.get("email"),
        name=data_object.get("name"),
    )


async def _apply_customer_deleted(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    await finance.mark_customer_deleted(conn, context.organization_id, data_object["id"])
    canceled = await finance.cancel_customer_subscriptions(
        conn, context.organization_id, data_object["id"]
    )
    if canceled:
        logger.info("Canceled subscriptions of deleted customer", subscriptions=canceled)


async def _apply_balance_available(
    conn: asyncpg.Connection, context: EffectContext, event: dict, data_object: dict
) -> None:
    pending_by_currency = {
        entry.get("currency"): int(entry.get("amount") or 0)
        for entry in data_object.get("pending") or []
    }
    for entry in data_object.get("available") or []:
        currency = (entry.get("currency") or "usd").lower()
        await finance.set_balance(
            conn,
            context.organization_id,
            currency,
            int(entry.get("amount") or 0),
            pending_by_currency.get(entry.get("currency"), 0),
        )


_HANDLERS: dict[
    str,
    Callable[[asyncpg.Connection, EffectContext, dict, dict], Awaitable[None]],
] = {
    "customer.subscription.created": _apply_subscription_upsert,
    "customer.subscription.updated": _apply_subscription_upsert,
    "customer.subscription.deleted": _apply_subscription_deleted,
    "invoice.paid": _apply_invoice_paid,
    "invoice.payment_succeeded": _apply_invoice_payment_succeeded,
    "invoice.payment_failed": _apply_invoice_payment_failed,
    "charge.refunded": _apply_charge_refunded,
    "customer.created": _apply_customer_upsert,
    "customer.updated": _apply_customer_upsert,
    "customer.deleted": _apply_customer_deleted,
    "balance.available": _apply_balance_available,
}


async def apply_stripe_event_effects(
    conn: asyncpg.Connection, context: EffectContext, event: StoredEvent
) -> None:
    """Apply a stored Stripe event. Unhandled types are informational only."""
    handler = _HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Stripe event stored without side effects", event_type=event.type)
        return

    data_object = (event.raw_data.get("data") or {}).get("object") or {}
    await handler(conn, context, event.raw_data, data_object)
