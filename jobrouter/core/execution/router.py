"""Resource-profile routing.

Classifies a job's declared resources into one execution tier. Tiers are
checked cheapest first and the first tier whose limits hold in every
dimension wins. Unset (zero) dimensions always fit, so a job that declares
nothing goes to the cheapest tier; zero is "provider default", never
"unbounded".

    CLOUD_TASKS    cpu <= 500m   mem <= 512Mi   duration <= 600s
    CLOUD_RUN_JOB  cpu <= 4000m  mem <= 8192Mi  duration <= 3600s
    CLOUD_BATCH    everything else
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .models import AssignedService, Resources

_log = logging.getLogger("jobrouter.router")


@dataclass(frozen=True)
class TierLimits:
    service: AssignedService
    cpu_millis: int
    memory_mib: int
    max_run_duration_seconds: int

    def fits(self, resources: Resources) -> bool:
        return all(ok for _, ok in self.compare(resources).values())

    def compare(self, resources: Resources) -> Dict[str, Tuple[int, bool]]:
        return {
            "cpu_millis": (resources.cpu_millis, resources.cpu_millis <= self.cpu_millis),
            "memory_mib": (resources.memory_mib, resources.memory_mib <= self.memory_mib),
            "max_run_duration_seconds": (
                resources.max_run_duration_seconds,
                resources.max_run_duration_seconds <= self.max_run_duration_seconds,
            ),
        }


# Ascending order matters: first match wins.
TIERS: Tuple[TierLimits, ...] = (
    TierLimits(AssignedService.CLOUD_TASKS, cpu_millis=500, memory_mib=512, max_run_duration_seconds=600),
    TierLimits(AssignedService.CLOUD_RUN_JOB, cpu_millis=4000, memory_mib=8192, max_run_duration_seconds=3600),
)

FALLBACK = AssignedService.CLOUD_BATCH


@dataclass(frozen=True)
class RoutingDecision:
    service: AssignedService
    resources: Resources
    # tier name -> dimension -> (declared, within limit)
    checks: Dict[str, Dict[str, Tuple[int, bool]]]

    def to_dict(self) -> dict:
        return {
            "assigned_service": self.service.value,
            "resources": self.resources.model_dump(),
            "checks": {
                tier: {dim: {"declared": v, "within_limit": ok} for dim, (v, ok) in dims.items()}
                for tier, dims in self.checks.items()
            },
        }


def explain(resources: Optional[Resources]) -> RoutingDecision:
    res = resources or Resources()
    checks: Dict[str, Dict[str, Tuple[int, bool]]] = {}
    for tier in TIERS:
        checks[tier.service.value] = tier.compare(res)
        if tier.fits(res):
            return RoutingDecision(service=tier.service, resources=res, checks=checks)
    return RoutingDecision(service=FALLBACK, resources=res, checks=checks)


def classify(resources: Optional[Resources]) -> AssignedService:
    """Total: always returns exactly one tier."""
    decision = explain(resources)
    _log.info(
        "routed cpu_millis=%s memory_mib=%s max_run_duration_seconds=%s -> %s",
        decision.resources.cpu_millis,
        decision.resources.memory_mib,
        decision.resources.max_run_duration_seconds,
        decision.service.value,
    )
    return decision.service
