import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from saas_billing_svc import entitlements
from saas_billing_svc.config import Settings
from saas_billing_svc.customers import ensure_customer
from saas_billing_svc.errors import BillingConfigurationError, NotFoundError
from saas_billing_svc.models.invoice import Invoice
from saas_billing_svc.models.product import Product
from saas_billing_svc.models.subscription import Subscription
from saas_billing_svc.models.todo import Todo
from saas_billing_svc.models.user import User
from saas_billing_svc.stripe_integration import StripeIntegration


class BillingService:
    """
    Billing operations for one request. Dependencies are passed in explicitly;
    a missing stripe_integration means Stripe is not configured.
    """

    def __init__(self, db: Session, settings: Settings,
                 stripe_integration: Optional[StripeIntegration] = None) -> None:
        self.db = db
        self.settings = settings
        self.stripe_integration = stripe_integration

    def _require_stripe(self) -> StripeIntegration:
        if self.stripe_integration is None:
            raise BillingConfigurationError()
        return self.stripe_integration

    def get_subscription(self, user_id: str) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.user_id == user_id).first()

    def get_plans(self) -> List[Product]:
        return self.db.query(Product).filter(Product.active.is_(True)).order_by(Product.price).all()

    def get_invoices(self, user_id: str) -> List[Invoice]:
        return self.db.query(Invoice).filter(Invoice.user_id == user_id).order_by(Invoice.created_at).all()

    def get_usage(self, user_id: str) -> Dict[str, int]:
        count = self.db.query(func.count(Todo.id)).filter(Todo.user_id == user_id).scalar()
        return {"todos": count or 0}

    def get_entitlements(self, user_id: str) -> Dict[str, Any]:
        subscription = self.get_subscription(user_id)
        product = None
        if subscription is not None:
            product = self.db.query(Product).filter(Product.stripe_price_id == subscription.stripe_price_id).first()
        todos = self.get_usage(user_id)["todos"]
        return {
            "plan": product.name if product is not None else None,
            "status": subscription.status if subscription is not None else None,
            "features": entitlements.granted_features(subscription, product),
            "todo_limit": entitlements.todo_limit(subscription, product),
            "todos": todos,
            "can_create_todo": entitlements.can_create_todo(subscription, product, todos),
        }

    def create_checkout_session(self, user_id: str, price_id: str) -> Dict[str, str]:
        stripe_integration = self._require_stripe()
        user = self.db.get(User, user_id)
        if user is None or not user.email:
            raise NotFoundError("User not found")

        customer_id = ensure_customer(self.db, stripe_integration, user.id, user.email)
        url = stripe_integration.create_checkout_session(
            customer_id,
            price_id,
            success_url=f"{self.settings.billing_url}?success=true",
            cancel_url=f"{self.settings.billing_url}?canceled=true",
            metadata={"userId": user.id},
        )
        logging.info(f"Checkout session created for user {user.id} and price {price_id}")
        return {"url": url}

    def create_portal_session(self, user_id: str) -> Dict[str, str]:
        stripe_integration = self._require_stripe()
        user = self.db.get(User, user_id)
        if user is None or not user.stripe_customer_id:
            raise NotFoundError("No Stripe customer found")

        url = stripe_integration.create_portal_session(user.stripe_customer_id, return_url=self.settings.billing_url)
        return {"url": url}

    def cancel_subscription(self, user_id: str) -> Dict[str, bool]:
        return self._set_cancel_at_period_end(user_id, True)

    def reactivate_subscription(self, user_id: str) -> Dict[str, bool]:
        return self._set_cancel_at_period_end(user_id, False)

    def _set_cancel_at_period_end(self, user_id: str, cancel: bool) -> Dict[str, bool]:
        """
        Flip cancel_at_period_end on Stripe, then on the local row.

        If the local write fails after Stripe accepted the change, the next
        customer.subscription.updated webhook brings the row back in line.
        """
        stripe_integration = self._require_stripe()
        subscription = self.get_subscription(user_id)
        if subscription is None:
            raise NotFoundError("No subscription found")

        stripe_integration.set_cancel_at_period_end(subscription.stripe_subscription_id, cancel)

        subscription.cancel_at_period_end = cancel
        self.db.add(subscription)
        try:
            self.db.commit()
        except Exception as commit_error:
            self.db.rollback()
            logging.error(
                f"Stripe subscription {subscription.stripe_subscription_id} updated but local write failed; "
                f"waiting for webhook to reconcile: {commit_error}",
                exc_info=True,
            )
            raise
        return {"success": True}
