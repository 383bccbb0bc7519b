import pytest

from onboarding.models import (
    ALL_FIELDS,
    COMPLETION_FIELDS,
    Milestone,
    OnboardingState,
    TourId,
    completion_field,
)


def test_default_is_all_false():
    state = OnboardingState.default()
    assert not any(state.to_fields().values())
    assert len(ALL_FIELDS) == 10


def test_every_tour_has_one_flag():
    assert set(COMPLETION_FIELDS) == set(TourId)
    assert completion_field("leads") == "leads_tour_completed"


def test_with_fields_returns_new_state():
    state = OnboardingState.default()
    updated = state.with_fields({"campaign_tour_completed": True})
    assert updated.is_completed(TourId.CAMPAIGN)
    assert not state.is_completed(TourId.CAMPAIGN)


def test_with_unknown_field_raises():
    with pytest.raises(ValueError):
        OnboardingState.default().with_fields({"bogus": True})


def test_from_fields_ignores_extra_columns_and_coerces_ints():
    state = OnboardingState.from_fields(
        {"user_id": "u", "first_email_sent": 1, "updated_at": "2024-01-01"}
    )
    assert state.has_milestone(Milestone.FIRST_EMAIL_SENT)
    assert state.first_email_sent is True
    assert not state.welcome_completed
