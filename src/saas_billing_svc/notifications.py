import logging
import datetime
from typing import Callable, Optional

# (to, subject, body) -> None
EmailTransport = Callable[[str, str, str], None]


def log_transport(to: str, subject: str, body: str) -> None:
    logging.info(f"Email to={to} subject={subject!r} body={body!r}")


class Notifier:
    """
    Fire-and-forget billing emails. Delivery failures are logged and never raised,
    so a broken mail provider cannot fail webhook processing.
    """

    def __init__(self, transport: Optional[EmailTransport] = None) -> None:
        self.transport = transport or log_transport

    def _send(self, to: Optional[str], subject: str, body: str) -> bool:
        if not to:
            logging.info(f"Skipping email {subject!r}: no recipient address")
            return False
        try:
            self.transport(to, subject, body)
            return True
        except Exception as e:
            logging.error(f"Failed to send email {subject!r} to {to}: {e}", exc_info=True)
            return False

    def send_payment_success_email(self, to: Optional[str], amount: int, currency: str,
                                   invoice_url: Optional[str] = None) -> bool:
        body = f"We received your payment of {amount / 100:.2f} {currency.upper()}."
        if invoice_url:
            body += f" View your invoice: {invoice_url}"
        return self._send(to, "Payment successful", body)

    def send_payment_failed_email(self, to: Optional[str], retry_url: str) -> bool:
        body = f"Your latest payment failed. Update your payment method: {retry_url}"
        return self._send(to, "Payment failed", body)

    def send_subscription_canceled_email(self, to: Optional[str],
                                         end_date: Optional[datetime.datetime]) -> bool:
        if end_date is not None:
            body = f"Your subscription has been canceled. Access ends on {end_date:%Y-%m-%d}."
        else:
            body = "Your subscription has been canceled."
        return self._send(to, "Subscription canceled", body)
