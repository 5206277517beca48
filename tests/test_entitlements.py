from types import SimpleNamespace

import pytest

from saas_billing_svc.entitlements import (
    FREE_FEATURES,
    PRO_FEATURES,
    ByHardcodedTier,
    ByProduct,
    can_create_todo,
    entitlement_source,
    granted_features,
    has_feature,
    todo_limit,
)

active_pro = SimpleNamespace(status='active')
past_due_pro = SimpleNamespace(status='past_due')
free_product = SimpleNamespace(features=['basic_todos', 'basic_support'])
pro_product = SimpleNamespace(features=['basic_todos', 'unlimited_todos', 'export_data'])


def test_entitlement_source_is_resolved_from_product():
    assert entitlement_source(pro_product) == ByProduct(features=('basic_todos', 'unlimited_todos', 'export_data'))
    assert entitlement_source(None) == ByHardcodedTier()
    assert entitlement_source(SimpleNamespace(features=None)) == ByHardcodedTier()


def test_no_subscription_and_no_product_denies_pro_feature():
    assert has_feature(None, None, 'unlimited_todos') is False


def test_pro_feature_on_product_requires_active_subscription():
    assert has_feature(active_pro, pro_product, 'unlimited_todos') is True
    assert has_feature(past_due_pro, pro_product, 'unlimited_todos') is False
    assert has_feature(None, pro_product, 'unlimited_todos') is False


def test_feature_missing_from_product_is_denied():
    assert has_feature(active_pro, free_product, 'unlimited_todos') is False


def test_free_feature_on_product_is_always_granted():
    assert has_feature(None, free_product, 'basic_todos') is True


@pytest.mark.parametrize('feature', FREE_FEATURES)
def test_fallback_grants_free_features(feature):
    assert has_feature(None, None, feature) is True


@pytest.mark.parametrize('feature', PRO_FEATURES)
def test_fallback_grants_pro_features_only_when_active(feature):
    assert has_feature(active_pro, None, feature) is True
    assert has_feature(past_due_pro, None, feature) is False


def test_unknown_feature_is_denied():
    assert has_feature(active_pro, None, 'teleportation') is False
    assert has_feature(active_pro, SimpleNamespace(features=['teleportation']), 'teleportation') is True
    assert has_feature(active_pro, pro_product, 'teleportation') is False


def test_has_feature_is_deterministic():
    args = (active_pro, pro_product, 'export_data')
    assert has_feature(*args) == has_feature(*args)
    assert pro_product.features == ['basic_todos', 'unlimited_todos', 'export_data']
    assert active_pro.status == 'active'


def test_free_todo_limit_boundary():
    assert can_create_todo(None, free_product, 9) is True
    assert can_create_todo(None, free_product, 10) is False


def test_pro_todos_are_unlimited():
    assert can_create_todo(active_pro, pro_product, 10_000) is True
    assert todo_limit(active_pro, pro_product) is None
    assert todo_limit(None, free_product) == 10


def test_granted_features_keeps_product_order():
    assert granted_features(active_pro, pro_product) == ['basic_todos', 'unlimited_todos', 'export_data']
    assert granted_features(None, pro_product) == ['basic_todos']
    assert granted_features(None, None) == list(FREE_FEATURES)
