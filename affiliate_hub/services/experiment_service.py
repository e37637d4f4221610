"""
Deterministic A/B experiment bucketing.

Admission to an experiment and the variant a visitor sees are two
independent hash draws over the visitor id, so both are stable across
requests and processes. Assignments travel in a signed token with a
bounded lifetime; a visitor who presents a valid token keeps their
assignments, and only experiments added since are rolled.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from affiliate_hub.config import settings
from affiliate_hub.core.exceptions import ValidationError
from affiliate_hub.core.security import create_signed_token, decode_token
from affiliate_hub.utils.crypto import generate_session_id, hash_assignment, hash_percentile
from affiliate_hub.utils.helpers import ensure_utc, utc_now

logger = logging.getLogger(__name__)

ASSIGNMENT_TOKEN_TYPE = "experiments"
EVENT_TYPES = ("click", "conversion", "view")


@dataclass
class Variant:
    id: str
    name: str
    weight: int
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class Experiment:
    id: str
    name: str
    variants: list[Variant]
    description: str = ""
    target_percentage: int = 100
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.variants:
            raise ValidationError(f"Experiment {self.id} has no variants")
        total = sum(variant.weight for variant in self.variants)
        if total != 100:
            raise ValidationError(f"Variant weights for {self.id} sum to {total}, expected 100")
        if not 0 <= self.target_percentage <= 100:
            raise ValidationError(f"Target percentage for {self.id} must be within 0-100")

    def get_variant(self, variant_id: str) -> Variant | None:
        return next((v for v in self.variants if v.id == variant_id), None)

    def is_live(self, now: datetime | None = None) -> bool:
        if not self.is_active:
            return False
        now = now or utc_now()
        if self.start_date and now < ensure_utc(self.start_date):
            return False
        return not (self.end_date and now > ensure_utc(self.end_date))


@dataclass
class UserExperiments:
    user_id: str
    assignments: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)


class ExperimentRegistry:
    def __init__(self, experiments: list[Experiment] | None = None):
        self._experiments: dict[str, Experiment] = {}
        for experiment in experiments or []:
            self.add(experiment)

    def add(self, experiment: Experiment) -> None:
        if experiment.id in self._experiments:
            raise ValidationError(f"Experiment {experiment.id} is already registered")
        self._experiments[experiment.id] = experiment

    def get(self, experiment_id: str) -> Experiment | None:
        return self._experiments.get(experiment_id)

    def all(self) -> list[Experiment]:
        return list(self._experiments.values())

    def __contains__(self, experiment_id: str) -> bool:
        return experiment_id in self._experiments

    def __len__(self) -> int:
        return len(self._experiments)


def default_registry() -> ExperimentRegistry:
    launched = datetime(2024, 1, 1, tzinfo=UTC)
    return ExperimentRegistry(
        [
            Experiment(
                id="cta-button-text",
                name="CTA Button Text",
                description="Test different call-to-action button texts",
                variants=[
                    Variant("control", "Control", 50, {"text": "View Pricing"}),
                    Variant("action", "Action", 50, {"text": "Get Started Now"}),
                ],
                target_percentage=100,
                start_date=launched,
            ),
            Experiment(
                id="product-card-layout",
                name="Product Card Layout",
                description="Test different product card designs",
                variants=[
                    Variant("default", "Default", 50, {"layout": "vertical", "showRating": True}),
                    Variant(
                        "compact", "Compact", 50, {"layout": "horizontal", "showRating": False}
                    ),
                ],
                target_percentage=50,
                start_date=launched,
            ),
            Experiment(
                id="pricing-format",
                name="Pricing Display Format",
                description="Test different pricing display formats",
                variants=[
                    Variant("simple", "Simple", 33, {"format": "simple", "showCurrency": False}),
                    Variant(
                        "detailed", "Detailed", 33, {"format": "detailed", "showCurrency": True}
                    ),
                    Variant("savings", "Savings", 34, {"format": "savings", "showOriginal": True}),
                ],
                target_percentage=100,
                start_date=launched,
            ),
            Experiment(
                id="disclosure-position",
                name="Disclosure Position",
                description="Test where to show affiliate disclosure",
                variants=[
                    Variant("top", "Top Banner", 50, {"position": "top", "type": "banner"}),
                    Variant("inline", "Inline", 50, {"position": "inline", "type": "subtle"}),
                ],
                target_percentage=100,
                start_date=launched,
            ),
        ]
    )


def get_experiment_config(variant: Variant | None, key: str, default: Any = None) -> Any:
    if variant is None or not variant.config:
        return default
    value = variant.config.get(key)
    return default if value is None else value


class ExperimentBucketer:
    def __init__(self, registry: ExperimentRegistry, token_days: int | None = None):
        self.registry = registry
        self.token_lifetime = timedelta(
            days=token_days if token_days is not None else settings.experiment_token_days
        )

    def is_in_experiment(
        self, user_id: str, experiment: Experiment, now: datetime | None = None
    ) -> bool:
        if not experiment.is_live(now):
            return False
        return hash_percentile(user_id, experiment.id, "targeting") < experiment.target_percentage

    def assign_variant(self, user_id: str, experiment: Experiment) -> Variant:
        return hash_assignment(
            user_id,
            experiment.id,
            [(variant, variant.weight) for variant in experiment.variants],
        )

    def assign_all(
        self,
        user_id: str,
        existing: dict[str, str] | None = None,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """
        Assignments for every live experiment the user is admitted to.

        Stored assignments that still name a known variant are kept as-is.
        """
        assignments: dict[str, str] = {}
        existing = existing or {}

        for experiment in self.registry.all():
            stored = existing.get(experiment.id)
            if stored and experiment.get_variant(stored):
                assignments[experiment.id] = stored
                continue
            if self.is_in_experiment(user_id, experiment, now):
                assignments[experiment.id] = self.assign_variant(user_id, experiment).id

        return assignments

    def encode_assignments(self, user: UserExperiments) -> str:
        return create_signed_token(
            {
                "sub": user.user_id,
                "assignments": user.assignments,
                "created_at": user.created_at.isoformat(),
            },
            token_type=ASSIGNMENT_TOKEN_TYPE,
            expires_delta=self.token_lifetime,
        )

    def decode_assignments(self, token: str | None) -> UserExperiments | None:
        if not token:
            return None

        payload = decode_token(token, token_type=ASSIGNMENT_TOKEN_TYPE)
        if not payload or not payload.get("sub"):
            return None

        assignments = payload.get("assignments") or {}
        if not isinstance(assignments, dict):
            return None

        try:
            created_at = datetime.fromisoformat(payload["created_at"])
        except (KeyError, TypeError, ValueError):
            created_at = utc_now()

        return UserExperiments(
            user_id=payload["sub"],
            assignments={str(k): str(v) for k, v in assignments.items()},
            created_at=created_at,
        )

    def get_user_experiments(self, token: str | None = None) -> tuple[UserExperiments, str]:
        """
        Resolve the visitor's assignments from their token.

        Returns:
            The assignments and a token to hand back to the client; the token
            is re-issued whenever the assignments changed or none was valid.
        """
        user = self.decode_assignments(token)
        if user is None:
            user = UserExperiments(user_id=generate_session_id())
            user.assignments = self.assign_all(user.user_id)
            return user, self.encode_assignments(user)

        assignments = self.assign_all(user.user_id, existing=user.assignments)
        if assignments != user.assignments:
            user.assignments = assignments
            return user, self.encode_assignments(user)

        return user, token

    def get_variant(self, user: UserExperiments, experiment_id: str) -> Variant | None:
        variant_id = user.assignments.get(experiment_id)
        if not variant_id:
            return None
        experiment = self.registry.get(experiment_id)
        if experiment is None:
            return None
        return experiment.get_variant(variant_id)

    def get_active_variants(self, user: UserExperiments) -> dict[str, Variant]:
        variants: dict[str, Variant] = {}
        for experiment_id in user.assignments:
            variant = self.get_variant(user, experiment_id)
            if variant:
                variants[experiment_id] = variant
        return variants

    def track_event(
        self,
        user: UserExperiments,
        experiment_id: str,
        event_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if event_type not in EVENT_TYPES:
            raise ValidationError(f"Unknown experiment event type: {event_type}")

        variant_id = user.assignments.get(experiment_id)
        if not variant_id:
            return False

        logger.info(
            f"Experiment event {event_type}: experiment={experiment_id} "
            f"variant={variant_id} user={user.user_id} metadata={metadata or {}}"
        )
        return True
