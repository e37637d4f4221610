from datetime import timedelta

import pytest

from affiliate_hub.core.exceptions import ValidationError
from affiliate_hub.core.security import create_admin_token
from affiliate_hub.services import (
    Experiment,
    ExperimentBucketer,
    ExperimentRegistry,
    Variant,
    default_registry,
)
from affiliate_hub.services.experiment_service import UserExperiments, get_experiment_config
from affiliate_hub.utils.helpers import utc_now


def two_way(experiment_id: str = "headline", target_percentage: int = 100, **kwargs) -> Experiment:
    return Experiment(
        id=experiment_id,
        name=experiment_id.title(),
        variants=[
            Variant("a", "A", 50, {"text": "Start free"}),
            Variant("b", "B", 50, {"text": "Try it"}),
        ],
        target_percentage=target_percentage,
        **kwargs,
    )


def test_weights_must_sum_to_100():
    with pytest.raises(ValidationError):
        Experiment(id="bad", name="Bad", variants=[Variant("a", "A", 60), Variant("b", "B", 30)])

    with pytest.raises(ValidationError):
        Experiment(id="empty", name="Empty", variants=[])

    with pytest.raises(ValidationError):
        two_way(target_percentage=120)


def test_registry_rejects_duplicate_ids():
    registry = ExperimentRegistry([two_way()])
    with pytest.raises(ValidationError):
        registry.add(two_way())
    assert "headline" in registry
    assert len(registry) == 1


def test_default_registry_is_valid():
    registry = default_registry()
    assert len(registry) == 4
    assert registry.get("product-card-layout").target_percentage == 50


def test_is_live_respects_window_and_flag():
    now = utc_now()
    assert two_way().is_live(now)
    assert not two_way(is_active=False).is_live(now)
    assert not two_way(start_date=now + timedelta(days=1)).is_live(now)
    assert not two_way(end_date=now - timedelta(days=1)).is_live(now)


def test_assignment_is_deterministic():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))
    experiment = bucketer.registry.get("headline")

    for i in range(50):
        user_id = f"visitor-{i}"
        first = bucketer.assign_variant(user_id, experiment)
        assert bucketer.assign_variant(user_id, experiment) is first


def test_target_percentage_bounds_admission():
    nobody = two_way("nobody", target_percentage=0)
    everyone = two_way("everyone", target_percentage=100)
    bucketer = ExperimentBucketer(ExperimentRegistry([nobody, everyone]))

    for i in range(200):
        assignments = bucketer.assign_all(f"visitor-{i}")
        assert "nobody" not in assignments
        assert assignments["everyone"] in {"a", "b"}


def test_partial_targeting_admits_roughly_the_target():
    half = two_way("half", target_percentage=50)
    bucketer = ExperimentBucketer(ExperimentRegistry([half]))

    admitted = sum(1 for i in range(10_000) if bucketer.is_in_experiment(f"v-{i}", half))
    assert 4500 <= admitted <= 5500


def test_stored_assignments_are_kept():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))

    assert bucketer.assign_all("visitor", existing={"headline": "b"}) == {"headline": "b"}
    assert bucketer.assign_all("visitor", existing={"headline": "a"}) == {"headline": "a"}


def test_unknown_stored_variant_is_reassigned():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))

    assignments = bucketer.assign_all("visitor", existing={"headline": "retired"})
    assert assignments["headline"] in {"a", "b"}


def test_token_round_trip_reuses_assignments():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))

    user, token = bucketer.get_user_experiments()
    again, same_token = bucketer.get_user_experiments(token)

    assert again.user_id == user.user_id
    assert again.assignments == user.assignments
    assert same_token == token


def test_new_experiment_reissues_token():
    registry = ExperimentRegistry([two_way()])
    bucketer = ExperimentBucketer(registry)
    user, token = bucketer.get_user_experiments()

    registry.add(two_way("footer"))
    again, new_token = bucketer.get_user_experiments(token)

    assert again.user_id == user.user_id
    assert again.assignments["headline"] == user.assignments["headline"]
    assert "footer" in again.assignments
    assert new_token != token


def test_invalid_tokens_start_a_new_visitor():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))
    user, token = bucketer.get_user_experiments()

    tampered, _ = bucketer.get_user_experiments(token[:-4] + "AAAA")
    assert tampered.user_id != user.user_id

    admin_token = create_admin_token("someone")
    assert bucketer.decode_assignments(admin_token) is None

    expired = ExperimentBucketer(bucketer.registry, token_days=-1)
    _, old_token = expired.get_user_experiments()
    assert bucketer.decode_assignments(old_token) is None


def test_active_variants_and_config():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))
    user = UserExperiments(user_id="visitor", assignments={"headline": "b", "gone": "x"})

    variants = bucketer.get_active_variants(user)
    assert list(variants) == ["headline"]
    assert get_experiment_config(variants["headline"], "text") == "Try it"
    assert get_experiment_config(variants["headline"], "color", "blue") == "blue"
    assert get_experiment_config(None, "text", "fallback") == "fallback"


def test_track_event():
    bucketer = ExperimentBucketer(ExperimentRegistry([two_way()]))
    user = UserExperiments(user_id="visitor", assignments={"headline": "a"})

    assert bucketer.track_event(user, "headline", "click", {"position": "hero"})
    assert not bucketer.track_event(user, "footer", "view")
    with pytest.raises(ValidationError):
        bucketer.track_event(user, "headline", "hover")
