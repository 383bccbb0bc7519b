"""Getting-started checklist.

A short list of first steps derived from the onboarding record. Items either
start a tour directly or point at the screen where the user can do the thing.
The checklist disappears once dismissed, or once the dashboard tour, the
campaign tour, the first campaign and the first email are all done.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from onboarding.models import Milestone, OnboardingState, TourId

from .onboarding_state_service import OnboardingStateService
from .tour_controller import TourController

__all__ = ["ChecklistItem", "ChecklistService"]


@dataclass(frozen=True)
class ChecklistItem:
    item_id: str
    title: str
    description: str
    completed: bool
    route: Optional[str] = None
    tour_id: Optional[TourId] = None


class ChecklistService:
    def __init__(self, onboarding: OnboardingStateService, controller: TourController) -> None:
        self._onboarding = onboarding
        self._controller = controller
        self._dismissed = False

    def items(self) -> List[ChecklistItem]:
        state = self._onboarding.state
        return [
            ChecklistItem(
                "dashboard-tour",
                "Complete Dashboard Tour",
                "Learn the basics of SmartLeads",
                state.dashboard_tour_completed,
                tour_id=TourId.DASHBOARD,
            ),
            ChecklistItem(
                "connect-account",
                "Connect Email Account",
                "Link your Gmail or email provider",
                state.accounts_tour_completed,
                route="/dashboard/accounts",
            ),
            ChecklistItem(
                "create-campaign",
                "Create Your First Campaign",
                "Start generating leads with AI",
                state.has_milestone(Milestone.FIRST_CAMPAIGN_CREATED),
                route="/dashboard/campaigns/new",
            ),
            ChecklistItem(
                "send-email",
                "Send Your First Email",
                "Reach out to your prospects",
                state.has_milestone(Milestone.FIRST_EMAIL_SENT),
            ),
        ]

    def completed_count(self) -> int:
        return sum(1 for item in self.items() if item.completed)

    def percent(self) -> int:
        items = self.items()
        return round(self.completed_count() / len(items) * 100)

    @staticmethod
    def _essentials_done(state: OnboardingState) -> bool:
        return all(
            (
                state.dashboard_tour_completed,
                state.campaign_tour_completed,
                state.first_campaign_created,
                state.first_email_sent,
            )
        )

    @property
    def visible(self) -> bool:
        return not self._dismissed and not self._essentials_done(self._onboarding.state)

    def dismiss(self) -> None:
        self._dismissed = True

    def activate(self, item_id: str) -> Optional[str]:
        """Run an item's action.

        Starts the item's tour when it has one and returns None; otherwise
        returns the route the host should open. Completed items do nothing.
        """
        item = next((i for i in self.items() if i.item_id == item_id), None)
        if item is None:
            raise KeyError(item_id)
        if item.completed:
            return None
        if item.tour_id is not None:
            self._controller.start(item.tour_id)
            return None
        return item.route
