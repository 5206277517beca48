import json
import time
import logging
from typing import Any, Callable, Dict, Optional

import stripe

from saas_billing_svc.errors import InvalidSignatureError

# Errors worth retrying: the request may not have reached Stripe, or was throttled
TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError)


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or plain dict, returning default if absent."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def stripe_id(obj: Any) -> Optional[str]:
    """Stripe expands some references into objects; return the id either way."""
    if obj is None or isinstance(obj, str):
        return obj
    return stripe_field(obj, 'id')


class StripeIntegration:
    """
    This class encapsulates the integration with the Stripe API: customers,
    subscriptions, checkout and billing portal sessions, and webhook signature
    verification.

    The API key is passed on every request, so several integrations with
    different keys can coexist and nothing is configured process-wide.
    """

    def __init__(self, api_key: str, max_retries: int = 3, retry_delay: float = 1.0) -> None:
        if not api_key:
            raise ValueError('api_key cannot be empty')
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _with_retries(self, action: str, call: Callable[[], Any]) -> Any:
        attempt = 0
        while attempt < self.max_retries:
            try:
                return call()
            except TRANSIENT_ERRORS as e:
                logging.error(f"Error during {action} (attempt {attempt + 1}): {e}", exc_info=True)
                attempt += 1
                if attempt < self.max_retries:
                    time.sleep(self.retry_delay)
            except Exception as e:
                logging.error(f"General error during {action}: {e}", exc_info=True)
                raise
        raise Exception(f'Failed {action} after {self.max_retries} retries.')

    def create_customer(self, email: str, metadata: Dict[str, str]) -> str:
        """
        Create a Stripe customer. Not retried: a retry after a lost response
        could leave a second customer behind, so the caller decides.

        :return: the new customer id.
        """
        try:
            customer = stripe.Customer.create(api_key=self.api_key, email=email, metadata=metadata)
        except Exception as e:
            logging.error(f"Error creating customer for {email}: {e}", exc_info=True)
            raise
        return stripe_id(customer)

    def retrieve_subscription(self, subscription_id: str) -> Any:
        """
        Retrieve the authoritative subscription snapshot.

        :raises ValueError: if subscription_id is empty.
        """
        if not subscription_id or not subscription_id.strip():
            raise ValueError('subscription_id cannot be empty')
        return self._with_retries(
            'subscription retrieval',
            lambda: stripe.Subscription.retrieve(subscription_id, api_key=self.api_key),
        )

    def update_subscription(self, subscription_id: str, update_data: Dict[str, Any]) -> Any:
        """
        Update an existing subscription using Stripe API with retry mechanism.

        :param subscription_id: The ID of the subscription to update.
        :param update_data: A dictionary of parameters to update.
        :return: The updated subscription.
        """
        if not subscription_id or not subscription_id.strip():
            raise ValueError('subscription_id cannot be empty')
        return self._with_retries(
            'subscription update',
            lambda: stripe.Subscription.modify(subscription_id, api_key=self.api_key, **update_data),
        )

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> Any:
        return self.update_subscription(subscription_id, {'cancel_at_period_end': cancel})

    def create_checkout_session(self, customer_id: str, price_id: str, success_url: str,
                                cancel_url: str, metadata: Optional[Dict[str, str]] = None) -> str:
        """
        Open a subscription-mode checkout session for one unit of price_id.

        :return: the hosted checkout URL.
        """
        session = self._with_retries(
            'checkout session creation',
            lambda: stripe.checkout.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                line_items=[{'price': price_id, 'quantity': 1}],
                mode='subscription',
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata or {},
            ),
        )
        return stripe_field(session, 'url')

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = self._with_retries(
            'billing portal session creation',
            lambda: stripe.billing_portal.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                return_url=return_url,
            ),
        )
        return stripe_field(session, 'url')


def construct_webhook_event(payload: str, sig_header: str, endpoint_secret: str) -> Dict[str, Any]:
    """
    Verify a webhook delivery and decode it. Needs no API key.

    :param payload: The raw payload from the webhook.
    :param sig_header: The Stripe-Signature header from the webhook.
    :param endpoint_secret: The webhook endpoint secret used for signature verification.
    :return: The event as a plain dictionary.
    :raises InvalidSignatureError: if signature verification fails.
    :raises ValueError: if the payload is not a JSON object.
    """
    try:
        stripe.WebhookSignature.verify_header(
            payload, sig_header, endpoint_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as e:
        logging.error(f'Webhook signature verification failed: {e}', exc_info=True)
        raise InvalidSignatureError()
    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        logging.error(f'Webhook payload is not valid JSON: {e}', exc_info=True)
        raise ValueError('Invalid payload.')
    if not isinstance(event, dict):
        raise ValueError('Invalid payload.')
    return event
