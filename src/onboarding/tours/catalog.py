"""Tour catalog: the immutable table of stepped tours.

Each tour is a non-empty ordered tuple of ``StepSpec`` plus the metadata the
help menu needs (display name, description, entry route). Targets use the
``[data-tour="key"]`` selector form; hosts tag their widgets with the bare key
(see ``tour_key``).

The welcome tour is a modal greeting and intentionally has no catalog entry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from onboarding.models import TourId
from onboarding.services.placement import Side

__all__ = [
    "StepSpec",
    "TourDefinition",
    "CATALOG",
    "get_tour",
    "has_steps",
    "iter_tours",
    "tour_key",
]

_SELECTOR_RE = re.compile(r"""^\[data-tour=["']?([\w\-]+)["']?\]$""")


def tour_key(selector: str) -> str:
    """Normalise ``[data-tour="x"]`` (or a bare ``x``) to ``x``."""
    match = _SELECTOR_RE.match(selector.strip())
    return match.group(1) if match else selector.strip()


@dataclass(frozen=True)
class StepSpec:
    target_selector: str
    title: str
    content: str
    position: Side = Side.AUTO
    media_ref: Optional[str] = None
    pro_tip_text: Optional[str] = None
    showcase_kind: Optional[str] = None
    highlight_terms: tuple[str, ...] = ()
    keyboard_hint_text: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", Side(self.position))
        object.__setattr__(self, "highlight_terms", tuple(self.highlight_terms))

    @property
    def target_key(self) -> str:
        return tour_key(self.target_selector)


@dataclass(frozen=True)
class TourDefinition:
    tour_id: TourId
    name: str
    description: str
    route: str
    steps: tuple[StepSpec, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.steps:
            raise ValueError(f"Tour '{self.tour_id.value}' must define at least one step")

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, index: int) -> StepSpec:
        return self.steps[index]


_KEYS_HINT = "Use the arrow keys to move between steps, Esc to leave the tour."

_DASHBOARD = TourDefinition(
    tour_id=TourId.DASHBOARD,
    name="Dashboard Tour",
    description="Learn about the main features and navigation",
    route="/dashboard",
    steps=(
        StepSpec(
            '[data-tour="start-campaign"]',
            "Start a New Campaign",
            "This is where you begin. Click here to create an AI-powered outreach "
            "campaign targeting businesses on Google Maps.",
            Side.BOTTOM,
            media_ref="illustrations/campaign-launch",
            highlight_terms=("AI-powered", "Google Maps"),
            keyboard_hint_text=_KEYS_HINT,
        ),
        StepSpec(
            '[data-tour="autopilot"]',
            "Autopilot Mode",
            "Want hands-free lead generation? Autopilot runs 24/7 to scrape leads, "
            "generate AI emails, and send them automatically.",
            Side.BOTTOM,
            showcase_kind="autopilot-pulse",
            highlight_terms=("24/7",),
        ),
        StepSpec(
            '[data-tour="campaigns"]',
            "View Your Campaigns",
            "Track all your campaigns here. See stats like leads found, emails sent, "
            "opens, and replies in real-time.",
            Side.BOTTOM,
            showcase_kind="sample-stats",
        ),
        StepSpec(
            '[data-tour="accounts"]',
            "Connect Email Accounts",
            "Connect your Gmail or email accounts to send personalized outreach. "
            "More accounts = higher sending capacity.",
            Side.BOTTOM,
            pro_tip_text="Warm up new inboxes for a week before raising their daily limit.",
        ),
        StepSpec(
            '[data-tour="templates"]',
            "Email Templates",
            "Create and save email templates for different niches. Our AI can "
            "personalize them for each lead automatically.",
            Side.BOTTOM,
        ),
    ),
)

_CAMPAIGN = TourDefinition(
    tour_id=TourId.CAMPAIGN,
    name="Campaign Creation",
    description="How to create AI-powered outreach campaigns",
    route="/dashboard/campaigns/new",
    steps=(
        StepSpec(
            '[data-tour="ai-prompt"]',
            "AI Campaign Builder",
            'Describe your campaign in plain English. For example: "Email restaurant '
            'owners in NYC about my delivery service." Our AI understands and sets up '
            "everything.",
            Side.BOTTOM,
            showcase_kind="typed-prompt",
            highlight_terms=("plain English",),
        ),
        StepSpec(
            '[data-tour="example-prompts"]',
            "Example Prompts",
            "Not sure what to write? Click any of these examples to auto-fill your "
            "campaign setup. They cover common niches and use cases.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="campaign-details"]',
            "Campaign Details",
            "Fine-tune your targeting here. Set your niche, location, and customize "
            "how many leads to find.",
            Side.TOP,
        ),
        StepSpec(
            '[data-tour="scraping-settings"]',
            "Advanced Scraping Options",
            "Control exactly what data to collect: reviews, social profiles, contact "
            "details, and more. More data = better personalization.",
            Side.TOP,
            pro_tip_text="Reviews give the AI the most material for a personal opener.",
        ),
        StepSpec(
            '[data-tour="email-template"]',
            "Email Template",
            "Write your email template or let AI generate one. Use variables like "
            "{{business_name}} for automatic personalization.",
            Side.TOP,
            highlight_terms=("{{business_name}}",),
        ),
    ),
)

_LEADS = TourDefinition(
    tour_id=TourId.LEADS,
    name="Managing Leads",
    description="Filter, sort, and manage your lead pipeline",
    route="/dashboard/leads",
    steps=(
        StepSpec(
            '[data-tour="leads-filter"]',
            "Filter Your Leads",
            "Search by name, email, or status. Filter by campaign to see leads from "
            "specific outreach efforts.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="lead-row"]',
            "Lead Information",
            "Each row shows a lead with their business name, email, and current "
            "status. Click to see full details.",
            Side.BOTTOM,
            showcase_kind="sample-lead",
        ),
        StepSpec(
            '[data-tour="lead-status"]',
            "Lead Status",
            "Track where each lead is in your pipeline: New, Contacted, Opened, "
            "Replied, or Converted.",
            Side.LEFT,
            highlight_terms=("New", "Contacted", "Opened", "Replied", "Converted"),
        ),
        StepSpec(
            '[data-tour="lead-actions"]',
            "Quick Actions",
            "Send emails, view lead details, or remove leads directly from this menu.",
            Side.LEFT,
        ),
    ),
)

_TEMPLATES = TourDefinition(
    tour_id=TourId.TEMPLATES,
    name="Email Templates",
    description="Create and customize email templates",
    route="/dashboard/templates",
    steps=(
        StepSpec(
            '[data-tour="create-template"]',
            "Create New Template",
            "Click here to create a new email template. Choose between AI-generated "
            "or manual templates.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="template-card"]',
            "Your Templates",
            "Each card shows a template with its name and preview. Click to edit or "
            "use in a campaign.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="template-actions"]',
            "Template Actions",
            "Edit, duplicate, or delete templates. Duplicating is great for A/B "
            "testing variations.",
            Side.LEFT,
            pro_tip_text="Change one line per duplicate so the A/B result stays readable.",
        ),
    ),
)

_ACCOUNTS = TourDefinition(
    tour_id=TourId.ACCOUNTS,
    name="Email Accounts",
    description="Connect and manage your email accounts",
    route="/dashboard/accounts",
    steps=(
        StepSpec(
            '[data-tour="connect-account"]',
            "Connect Email Account",
            "Link your Gmail or email provider to start sending. We use OAuth for "
            "secure access - we never store your password.",
            Side.BOTTOM,
            highlight_terms=("OAuth",),
        ),
        StepSpec(
            '[data-tour="account-card"]',
            "Connected Accounts",
            "View all your connected email accounts here. Each shows its daily limit "
            "and health status.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="daily-limit"]',
            "Daily Sending Limit",
            "Protect your email reputation with sending limits. Start low "
            "(20-30/day) and increase gradually.",
            Side.LEFT,
            highlight_terms=("20-30/day",),
        ),
    ),
)

_AUTOPILOT = TourDefinition(
    tour_id=TourId.AUTOPILOT,
    name="Autopilot Mode",
    description="Set up automated lead generation and outreach",
    route="/dashboard/autopilot",
    steps=(
        StepSpec(
            '[data-tour="autopilot-toggle"]',
            "Enable Autopilot",
            "Turn on autopilot to run your outreach automatically. The system will "
            "scrape, generate, and send on schedule.",
            Side.BOTTOM,
            media_ref="illustrations/autopilot",
        ),
        StepSpec(
            '[data-tour="autopilot-schedule"]',
            "Schedule Settings",
            "Set when autopilot should run. Choose days of the week and time windows "
            "that work best for your targets.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="autopilot-limits"]',
            "Daily Limits",
            "Control how many leads to scrape and emails to send per day. This "
            "protects your account reputation.",
            Side.BOTTOM,
        ),
        StepSpec(
            '[data-tour="autopilot-status"]',
            "Status Monitor",
            "See real-time status of your autopilot: what's running, what's queued, "
            "and any errors that need attention.",
            Side.TOP,
        ),
    ),
)

CATALOG: Mapping[TourId, TourDefinition] = MappingProxyType(
    {
        tour.tour_id: tour
        for tour in (_DASHBOARD, _CAMPAIGN, _LEADS, _TEMPLATES, _ACCOUNTS, _AUTOPILOT)
    }
)


def has_steps(tour_id: TourId | str) -> bool:
    try:
        return TourId(tour_id) in CATALOG
    except ValueError:
        return False


def get_tour(tour_id: TourId | str) -> TourDefinition:
    """Return the definition for a stepped tour (``KeyError`` if none)."""
    return CATALOG[TourId(tour_id)]


def iter_tours() -> Iterator[TourDefinition]:
    """Catalog tours in declaration order (the help menu order)."""
    return iter(CATALOG.values())
