"""Domain models shared by the tour engine.

Holds the identifiers of every tour and milestone plus the persisted
``OnboardingState`` record. Kept free of Qt and storage imports so the
controller, the state store adapters and the tests can share one vocabulary.

Invariant: every ``TourId`` maps to exactly one completion column in
``OnboardingState`` (checked at import time by ``_check_flag_mapping``).
"""

from __future__ import annotations

from dataclasses import dataclass, fields, asdict
from enum import Enum
from typing import Any, Dict, Mapping

__all__ = [
    "TourId",
    "Milestone",
    "OnboardingState",
    "COMPLETION_FIELDS",
    "MILESTONE_FIELDS",
    "ALL_FIELDS",
    "completion_field",
]


class TourId(str, Enum):  # str subclass so ids can be used directly as JSON keys
    WELCOME = "welcome"
    DASHBOARD = "dashboard"
    CAMPAIGN = "campaign"
    LEADS = "leads"
    TEMPLATES = "templates"
    ACCOUNTS = "accounts"
    AUTOPILOT = "autopilot"


class Milestone(str, Enum):
    FIRST_CAMPAIGN_CREATED = "first_campaign_created"
    FIRST_EMAIL_SENT = "first_email_sent"
    FIRST_REPLY_RECEIVED = "first_reply_received"


COMPLETION_FIELDS: Dict[TourId, str] = {
    TourId.WELCOME: "welcome_completed",
    TourId.DASHBOARD: "dashboard_tour_completed",
    TourId.CAMPAIGN: "campaign_tour_completed",
    TourId.LEADS: "leads_tour_completed",
    TourId.TEMPLATES: "templates_tour_completed",
    TourId.ACCOUNTS: "accounts_tour_completed",
    TourId.AUTOPILOT: "autopilot_tour_completed",
}

MILESTONE_FIELDS: Dict[Milestone, str] = {m: m.value for m in Milestone}


def completion_field(tour_id: TourId | str) -> str:
    """Return the persisted column name for a tour's completion flag."""
    return COMPLETION_FIELDS[TourId(tour_id)]


@dataclass
class OnboardingState:
    """Per-user onboarding record.

    An absent record is equivalent to ``OnboardingState.default()``.
    """

    welcome_completed: bool = False
    dashboard_tour_completed: bool = False
    campaign_tour_completed: bool = False
    leads_tour_completed: bool = False
    templates_tour_completed: bool = False
    accounts_tour_completed: bool = False
    autopilot_tour_completed: bool = False
    first_campaign_created: bool = False
    first_email_sent: bool = False
    first_reply_received: bool = False

    @classmethod
    def default(cls) -> "OnboardingState":
        return cls()

    def is_completed(self, tour_id: TourId | str) -> bool:
        return bool(getattr(self, completion_field(tour_id)))

    def has_milestone(self, milestone: Milestone | str) -> bool:
        return bool(getattr(self, Milestone(milestone).value))

    def to_fields(self) -> Dict[str, bool]:
        return asdict(self)

    @classmethod
    def from_fields(cls, data: Mapping[str, Any]) -> "OnboardingState":
        # Unknown columns (user_id, timestamps) are ignored; missing ones default to False.
        return cls(**{name: bool(data.get(name, False)) for name in ALL_FIELDS})

    def with_fields(self, changes: Mapping[str, bool]) -> "OnboardingState":
        merged = self.to_fields()
        for key, value in changes.items():
            if key not in merged:
                raise ValueError(f"Unknown onboarding field '{key}'")
            merged[key] = bool(value)
        return OnboardingState(**merged)


ALL_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(OnboardingState))


def _check_flag_mapping() -> None:
    if set(COMPLETION_FIELDS) != set(TourId):
        raise RuntimeError("Every TourId needs exactly one completion flag")
    declared = set(COMPLETION_FIELDS.values()) | set(MILESTONE_FIELDS.values())
    if len(set(COMPLETION_FIELDS.values())) != len(COMPLETION_FIELDS) or declared != set(
        ALL_FIELDS
    ):
        raise RuntimeError("OnboardingState columns out of sync with TourId / Milestone")


_check_flag_mapping()
