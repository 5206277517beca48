import datetime

import pytest
from fastapi.testclient import TestClient

from saas_billing_svc.app import create_app
from saas_billing_svc.auth import create_session_token
from saas_billing_svc.config import Settings
from saas_billing_svc.models.product import Product
from saas_billing_svc.models.subscription import Subscription
from saas_billing_svc.models.user import User
from saas_billing_svc.notifications import Notifier

from tests.testkit import PERIOD_END, WEBHOOK_SECRET, FakeStripeIntegration


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL='sqlite://',
        APP_URL='https://app.example.com',
        AUTH_SECRET='test-auth-secret',
        STRIPE_SECRET_KEY='sk_test_dummy',
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        STRIPE_RETRY_DELAY=0,
    )


@pytest.fixture
def fake_stripe():
    return FakeStripeIntegration()


@pytest.fixture
def sent_emails():
    return []


@pytest.fixture
def notifier(sent_emails):
    return Notifier(transport=lambda to, subject, body: sent_emails.append((to, subject, body)))


@pytest.fixture
def app(settings, fake_stripe, notifier):
    return create_app(settings, stripe_integration=fake_stripe, notifier=notifier)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db_session(app):
    db = app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    def _make_user(email='user@example.com', stripe_customer_id=None) -> User:
        user = User(email=email, name='Test User', stripe_customer_id=stripe_customer_id)
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user


@pytest.fixture
def make_subscription(db_session):
    def _make_subscription(user, sub_id='sub_123', status='active', price_id='price_pro_monthly',
                           cancel_at_period_end=False, last_event_at=None) -> Subscription:
        subscription = Subscription(
            user_id=user.id,
            stripe_subscription_id=sub_id,
            stripe_price_id=price_id,
            stripe_current_period_end=datetime.datetime.fromtimestamp(PERIOD_END, tz=datetime.timezone.utc),
            status=status,
            cancel_at_period_end=cancel_at_period_end,
            last_event_at=last_event_at,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription
    return _make_subscription


@pytest.fixture
def products(db_session):
    free = Product(stripe_price_id='price_free', stripe_product_id='prod_free', name='Free', price=0,
                   interval='month', features=['basic_todos', 'basic_support'])
    pro = Product(stripe_price_id='price_pro_monthly', stripe_product_id='prod_pro', name='Pro', price=1999,
                  interval='month', features=['basic_todos', 'unlimited_todos', 'priority_support', 'export_data'])
    retired = Product(stripe_price_id='price_legacy', stripe_product_id='prod_legacy', name='Legacy', price=999,
                      interval='month', features=['basic_todos'], active=False)
    db_session.add_all([free, pro, retired])
    db_session.commit()
    return {"free": free, "pro": pro, "retired": retired}


@pytest.fixture
def auth_headers(settings):
    def _auth_headers(user) -> dict:
        return {"Authorization": f"Bearer {create_session_token(user.id, settings)}"}
    return _auth_headers
