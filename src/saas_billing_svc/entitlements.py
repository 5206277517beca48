"""
Feature entitlement resolution.

Entitlements are derived only from a subscription's status and the features of the
product matched to it. Nothing here touches the database or Stripe.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

FREE_FEATURES = ("basic_todos", "basic_support")
PRO_FEATURES = (
    "unlimited_todos",
    "priority_support",
    "advanced_analytics",
    "export_data",
    "api_access",
)

FREE_TODO_LIMIT = 10


@dataclass(frozen=True)
class ByProduct:
    """Features listed on a matched product."""
    features: Tuple[str, ...]


@dataclass(frozen=True)
class ByHardcodedTier:
    """No product available; fall back to the built-in free/pro tier lists."""


EntitlementSource = Union[ByProduct, ByHardcodedTier]


def entitlement_source(product) -> EntitlementSource:
    """
    Resolve where feature tags come from for the given product (or None).

    A product without a feature list is treated like a missing product.
    """
    features = getattr(product, "features", None) if product is not None else None
    if isinstance(features, (list, tuple)):
        return ByProduct(features=tuple(features))
    return ByHardcodedTier()


def _is_active(subscription) -> bool:
    return subscription is not None and getattr(subscription, "status", None) == "active"


def feature_granted(source: EntitlementSource, subscription, feature: str) -> bool:
    if isinstance(source, ByProduct):
        if feature not in source.features:
            return False
        if feature in PRO_FEATURES:
            return _is_active(subscription)
        return True

    if feature in FREE_FEATURES:
        return True
    if feature in PRO_FEATURES:
        return _is_active(subscription)
    return False


def has_feature(subscription, product, feature: str) -> bool:
    """
    Check whether a subscription grants a feature.

    :param subscription: the user's Subscription row, or None for free-tier users.
    :param product: the Product matched to the subscription's price, or None.
    :param feature: feature tag to check.
    :return: True if the feature is granted.
    """
    return feature_granted(entitlement_source(product), subscription, feature)


def can_create_todo(subscription, product, current_count: int) -> bool:
    if has_feature(subscription, product, "unlimited_todos"):
        return True
    return current_count < FREE_TODO_LIMIT


def granted_features(subscription, product) -> List[str]:
    source = entitlement_source(product)
    if isinstance(source, ByProduct):
        candidates = tuple(dict.fromkeys(source.features))
    else:
        candidates = FREE_FEATURES + PRO_FEATURES
    return [feature for feature in candidates if feature_granted(source, subscription, feature)]


def todo_limit(subscription, product) -> Optional[int]:
    """Maximum number of todos, or None when unlimited."""
    if has_feature(subscription, product, "unlimited_todos"):
        return None
    return FREE_TODO_LIMIT
