import logging

from sqlalchemy.orm import Session

from saas_billing_svc.errors import NotFoundError
from saas_billing_svc.models.user import User
from saas_billing_svc.stripe_integration import StripeIntegration


def ensure_customer(db: Session, stripe_integration: StripeIntegration, user_id: str, email: str) -> str:
    """
    Return the user's Stripe customer id, creating the customer on first use.

    Two concurrent first calls for the same user can each create a Stripe customer;
    the later write wins on the user row. Callers needing exactly-once creation must
    serialize calls themselves.

    :raises NotFoundError: if the user does not exist.
    :raises Exception: if Stripe rejects the create call; nothing is written locally.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer_id = stripe_integration.create_customer(email, metadata={"userId": user_id})

    user.stripe_customer_id = customer_id
    db.add(user)
    try:
        db.commit()
    except Exception as commit_error:
        db.rollback()
        logging.error(commit_error, exc_info=True)
        raise
    logging.info(f"Created Stripe customer {customer_id} for user {user_id}")
    return customer_id
