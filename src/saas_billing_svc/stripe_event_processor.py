import logging
import datetime
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from saas_billing_svc.errors import BillingConfigurationError
from saas_billing_svc.models.base import utcnow
from saas_billing_svc.models.invoice import INVOICE_STATUSES, Invoice
from saas_billing_svc.models.subscription import SUBSCRIPTION_STATUSES, Subscription
from saas_billing_svc.models.user import User
from saas_billing_svc.models.webhook_event import ProcessedWebhookEvent
from saas_billing_svc.notifications import Notifier
from saas_billing_svc.stripe_integration import StripeIntegration, stripe_field, stripe_id

PROCESSED = 'processed'
IGNORED = 'ignored'
DUPLICATE = 'duplicate'

# Stripe statuses outside the local enum
_STATUS_ALIASES = {
    'incomplete_expired': 'canceled',
    'paused': 'unpaid',
}


@dataclass
class EventContext:
    db: Session
    event_id: str
    created: datetime.datetime
    stripe_integration: Optional[StripeIntegration] = None
    notifier: Optional[Notifier] = None
    billing_url: str = ''
    # run only after the state change is committed
    after_commit: List[Callable[[], Any]] = field(default_factory=list)


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def _from_timestamp(value: Any) -> Optional[datetime.datetime]:
    if value is None:
        return None
    return datetime.datetime.fromtimestamp(int(value), tz=datetime.timezone.utc)


def _normalize_status(status: Optional[str]) -> str:
    status = _STATUS_ALIASES.get(status, status)
    if status not in SUBSCRIPTION_STATUSES:
        logging.warning(f"Unknown subscription status {status!r}, storing as 'incomplete'")
        return 'incomplete'
    return status


def _resolve_user(db: Session, customer: Any) -> Optional[User]:
    customer_id = stripe_id(customer)
    if not customer_id:
        return None
    return db.query(User).filter(User.stripe_customer_id == customer_id).first()


def _user_email(db: Session, user_id: str) -> Optional[str]:
    user = db.get(User, user_id)
    return user.email if user is not None else None


def _is_stale(row: Subscription, ctx: EventContext) -> bool:
    last = _as_utc(row.last_event_at)
    return last is not None and ctx.created < last


def _stamp(row: Subscription, ctx: EventContext) -> None:
    last = _as_utc(row.last_event_at)
    if last is None or ctx.created > last:
        row.last_event_at = ctx.created


def _first_item(subscription: Any) -> Any:
    items = stripe_field(stripe_field(subscription, 'items'), 'data', [])
    return items[0] if items else None


def _apply_snapshot(row: Subscription, subscription: Any) -> None:
    item = _first_item(subscription)
    period_end = stripe_field(subscription, 'current_period_end')
    if period_end is None:
        # newer API versions carry the period on the subscription item
        period_end = stripe_field(item, 'current_period_end')

    row.stripe_subscription_id = stripe_id(subscription)
    row.stripe_price_id = stripe_field(stripe_field(item, 'price'), 'id', '')
    row.stripe_current_period_end = _from_timestamp(period_end) or utcnow()
    row.status = _normalize_status(stripe_field(subscription, 'status'))
    row.cancel_at_period_end = bool(stripe_field(subscription, 'cancel_at_period_end', False))


def handle_checkout_session_completed(session: Any, ctx: EventContext) -> str:
    customer_id = stripe_id(stripe_field(session, 'customer'))
    subscription_id = stripe_id(stripe_field(session, 'subscription'))
    if not customer_id or not subscription_id:
        logging.info(f"Event {ctx.event_id}: checkout session without customer or subscription, skipping.")
        return IGNORED

    user = _resolve_user(ctx.db, customer_id)
    if user is None:
        logging.info(f"Event {ctx.event_id}: no user for customer {customer_id}, skipping.")
        return IGNORED

    if ctx.stripe_integration is None:
        raise BillingConfigurationError()
    snapshot = ctx.stripe_integration.retrieve_subscription(subscription_id)

    row = ctx.db.query(Subscription).filter(Subscription.user_id == user.id).first()
    if row is None:
        row = ctx.db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()
    if row is None:
        row = Subscription(user_id=user.id)
    elif row.user_id != user.id:
        logging.warning(f"Event {ctx.event_id}: subscription {subscription_id} belongs to another user, skipping.")
        return IGNORED

    _apply_snapshot(row, snapshot)
    _stamp(row, ctx)
    ctx.db.add(row)
    logging.info(f"Event {ctx.event_id}: subscription {row.stripe_subscription_id} recorded for user {user.id} with status {row.status}.")
    return PROCESSED


def _owned_subscription(subscription: Any, ctx: EventContext) -> Optional[Subscription]:
    """Find the local row for a Stripe subscription, checked against the event's customer."""
    user = _resolve_user(ctx.db, stripe_field(subscription, 'customer'))
    if user is None:
        logging.info(f"Event {ctx.event_id}: no user for subscription customer, skipping.")
        return None
    subscription_id = stripe_id(subscription)
    row = ctx.db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()
    if row is None:
        logging.info(f"Event {ctx.event_id}: subscription {subscription_id} not found, skipping.")
        return None
    if row.user_id != user.id:
        logging.warning(f"Event {ctx.event_id}: subscription {subscription_id} does not belong to customer's user, skipping.")
        return None
    return row


def handle_subscription_updated(subscription: Any, ctx: EventContext) -> str:
    row = _owned_subscription(subscription, ctx)
    if row is None:
        return IGNORED
    if _is_stale(row, ctx):
        logging.info(f"Event {ctx.event_id}: older than last applied event for {row.stripe_subscription_id}, skipping.")
        return IGNORED

    _apply_snapshot(row, subscription)
    _stamp(row, ctx)
    ctx.db.add(row)
    logging.info(f"Event {ctx.event_id}: subscription {row.stripe_subscription_id} updated to {row.status}.")
    return PROCESSED


def handle_subscription_deleted(subscription: Any, ctx: EventContext) -> str:
    row = _owned_subscription(subscription, ctx)
    if row is None:
        return IGNORED

    # Deletion is terminal, so it applies regardless of event order
    row.status = 'canceled'
    _stamp(row, ctx)
    ctx.db.add(row)
    logging.info(f"Event {ctx.event_id}: subscription {row.stripe_subscription_id} set to canceled.")

    if ctx.notifier is not None:
        email = _user_email(ctx.db, row.user_id)
        end_date = _as_utc(row.stripe_current_period_end)
        ctx.after_commit.append(lambda: ctx.notifier.send_subscription_canceled_email(email, end_date))
    return PROCESSED


def handle_invoice_payment_succeeded(invoice: Any, ctx: EventContext) -> str:
    user = _resolve_user(ctx.db, stripe_field(invoice, 'customer'))
    invoice_id = stripe_id(invoice)
    if user is None or not invoice_id:
        logging.info(f"Event {ctx.event_id}: no user or invoice id on invoice event, skipping.")
        return IGNORED

    row = ctx.db.query(Invoice).filter(Invoice.stripe_invoice_id == invoice_id).first()
    if row is None:
        row = Invoice(user_id=user.id, stripe_invoice_id=invoice_id)
    elif row.user_id != user.id:
        logging.warning(f"Event {ctx.event_id}: invoice {invoice_id} belongs to another user, skipping.")
        return IGNORED
    status = stripe_field(invoice, 'status', 'paid')
    row.amount_paid = int(stripe_field(invoice, 'amount_paid', 0))
    row.currency = stripe_field(invoice, 'currency', 'usd')
    row.status = status if status in INVOICE_STATUSES else 'paid'
    row.hosted_invoice_url = stripe_field(invoice, 'hosted_invoice_url')
    row.invoice_pdf = stripe_field(invoice, 'invoice_pdf')
    ctx.db.add(row)
    logging.info(f"Event {ctx.event_id}: invoice {invoice_id} recorded for user {user.id}.")

    if ctx.notifier is not None:
        email, amount, currency, url = user.email, row.amount_paid, row.currency, row.hosted_invoice_url
        ctx.after_commit.append(lambda: ctx.notifier.send_payment_success_email(email, amount, currency, url))
    return PROCESSED


def handle_invoice_payment_failed(invoice: Any, ctx: EventContext) -> str:
    user = _resolve_user(ctx.db, stripe_field(invoice, 'customer'))
    if user is None or not stripe_id(invoice):
        logging.info(f"Event {ctx.event_id}: no user or invoice id on invoice event, skipping.")
        return IGNORED

    row = ctx.db.query(Subscription).filter(Subscription.user_id == user.id).first()
    if row is None:
        logging.info(f"Event {ctx.event_id}: user {user.id} has no subscription, skipping.")
        return IGNORED
    if _is_stale(row, ctx):
        logging.info(f"Event {ctx.event_id}: older than last applied event for {row.stripe_subscription_id}, skipping.")
        return IGNORED

    row.status = 'past_due'
    _stamp(row, ctx)
    ctx.db.add(row)
    logging.info(f"Event {ctx.event_id}: subscription {row.stripe_subscription_id} set to past_due.")

    if ctx.notifier is not None:
        email, retry_url = user.email, ctx.billing_url
        ctx.after_commit.append(lambda: ctx.notifier.send_payment_failed_email(email, retry_url))
    return PROCESSED


EVENT_HANDLERS: Dict[str, Callable[[Any, EventContext], str]] = {
    'checkout.session.completed': handle_checkout_session_completed,
    'customer.subscription.updated': handle_subscription_updated,
    'customer.subscription.deleted': handle_subscription_deleted,
    'invoice.payment_succeeded': handle_invoice_payment_succeeded,
    'invoice.payment_failed': handle_invoice_payment_failed,
}


def process_event(event: dict, db: Session, stripe_integration: Optional[StripeIntegration] = None,
                  notifier: Optional[Notifier] = None, billing_url: str = '') -> str:
    """
    Apply a Stripe event to the local subscription/invoice mirror.

    Safe under at-least-once delivery: an event id already applied is reported as
    'duplicate', and every handler is an upsert keyed by Stripe ids.

    :param event: Dictionary representing the Stripe event payload.
    :param db: SQLAlchemy Session instance.
    :param stripe_integration: client used to fetch authoritative snapshots; None when unconfigured.
    :param notifier: email sink, called only after a successful commit.
    :param billing_url: link placed in payment-failed emails.
    :return: 'processed', 'ignored' or 'duplicate'.
    :raises Exception: on any processing or commit failures, after rolling back.
    """
    event_type = event.get('type')
    if not event_type:
        error_msg = "Missing 'type' in event payload"
        logging.error(error_msg)
        raise ValueError(error_msg)

    event_id = event.get('id') or 'N/A'
    created = _from_timestamp(event.get('created')) or utcnow()

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logging.info(f"Unhandled event type: {event_type} for event {event_id} at {created}. No action taken.")
        return IGNORED

    if event.get('id') and db.query(ProcessedWebhookEvent).filter(ProcessedWebhookEvent.event_id == event_id).first():
        logging.info(f"Event {event_id}: already processed, skipping duplicate delivery.")
        return DUPLICATE

    ctx = EventContext(
        db=db,
        event_id=event_id,
        created=created,
        stripe_integration=stripe_integration,
        notifier=notifier,
        billing_url=billing_url,
    )
    obj = event.get('data', {}).get('object', {})

    try:
        outcome = handler(obj, ctx)
        if event.get('id'):
            db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
        db.commit()
    except Exception as e:
        db.rollback()
        logging.error(e, exc_info=True)
        raise

    logging.info(f"Event {event_id} at {created}: {event_type} {outcome}.")
    for send in ctx.after_commit:
        send()
    return outcome
