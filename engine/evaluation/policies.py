"""
SimTrace Evaluation — Scenario Policy Registry

Process-wide, read-only catalog of scenario policies. Two verdict variants
are kept side by side under the same scenario keys; they are never merged.
Unknown keys resolve to the warehouse policy so callers always get one.
"""

from __future__ import annotations

from types import MappingProxyType

from engine.evaluation.types import (
    COLLISION,
    NEAR_COLLISION,
    REPLAN,
    STUCK,
    VARIANT_LIMITS,
    VARIANT_THRESHOLD,
    ScenarioPolicy,
)

DEFAULT_POLICY_KEY = "warehouse"
DEFAULT_VARIANT = VARIANT_THRESHOLD

_WAREHOUSE_BLURB = "Strict indoor policy: tight aisles, low tolerance for near-collisions and deadlocks."
_DELIVERY_BLURB = "Moderate policy: sidewalks + obstacles; some pauses are okay, but repeated issues are not."
_SAR_BLURB = "Lenient collision policy, but deadlocks matter: complex terrain; recovery is critical."

# ---------------------------------------------------------------------------
# Threshold-band variant: weighted score against pass/warn ceilings
# ---------------------------------------------------------------------------

_THRESHOLD_POLICIES = MappingProxyType(
    {
        "warehouse": ScenarioPolicy(
            key="warehouse",
            name="Warehouse robot",
            weights={NEAR_COLLISION: 3, COLLISION: 8, STUCK: 6, REPLAN: 1},
            pass_max=6,
            warn_max=14,
            blurb=_WAREHOUSE_BLURB,
        ),
        "delivery": ScenarioPolicy(
            key="delivery",
            name="Delivery bot (ground)",
            weights={NEAR_COLLISION: 2, COLLISION: 8, STUCK: 3, REPLAN: 0.5},
            pass_max=8,
            warn_max=18,
            blurb=_DELIVERY_BLURB,
        ),
        "sar": ScenarioPolicy(
            key="sar",
            name="Search & rescue",
            weights={NEAR_COLLISION: 1, COLLISION: 6, STUCK: 8, REPLAN: 0.5},
            pass_max=10,
            warn_max=24,
            blurb=_SAR_BLURB,
        ),
    }
)

# ---------------------------------------------------------------------------
# Limits variant: per-type count limits, equality is WARN
# ---------------------------------------------------------------------------

_LIMIT_POLICIES = MappingProxyType(
    {
        "warehouse": ScenarioPolicy(
            key="warehouse",
            name="Warehouse robot",
            variant=VARIANT_LIMITS,
            weights={NEAR_COLLISION: 3, STUCK: 2},
            limits={NEAR_COLLISION: 1, STUCK: 0},
            blurb=_WAREHOUSE_BLURB,
        ),
        "delivery": ScenarioPolicy(
            key="delivery",
            name="Delivery bot (ground)",
            variant=VARIANT_LIMITS,
            weights={NEAR_COLLISION: 2, STUCK: 2},
            limits={NEAR_COLLISION: 2, STUCK: 1},
            blurb=_DELIVERY_BLURB,
        ),
        "sar": ScenarioPolicy(
            key="sar",
            name="Search & rescue",
            variant=VARIANT_LIMITS,
            weights={NEAR_COLLISION: 1, STUCK: 3},
            limits={NEAR_COLLISION: 3, STUCK: 2},
            blurb=_SAR_BLURB,
        ),
    }
)

_REGISTRIES = MappingProxyType(
    {
        VARIANT_THRESHOLD: _THRESHOLD_POLICIES,
        VARIANT_LIMITS: _LIMIT_POLICIES,
    }
)


def _registry(variant: str | None):
    return _REGISTRIES.get(variant or DEFAULT_VARIANT, _REGISTRIES[DEFAULT_VARIANT])


def lookup(key: str | None, variant: str | None = None) -> ScenarioPolicy:
    """
    Resolve a scenario key to its policy.

    Unknown keys fall back to the warehouse policy; unknown variants fall
    back to the threshold variant.

    Under the limits variant the warehouse policy allows zero stuck events,
    so even an empty run sits on that limit and is WARN, not PASS.
    """
    registry = _registry(variant)
    return registry.get(key or DEFAULT_POLICY_KEY, registry[DEFAULT_POLICY_KEY])


def is_known(key: str | None) -> bool:
    return key in _THRESHOLD_POLICIES


def available_policies(variant: str | None = None) -> list[ScenarioPolicy]:
    """All policies of a variant, in registry order (for UI pickers)."""
    return list(_registry(variant).values())
