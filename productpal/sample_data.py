from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .models import Comparison, ComparisonProduct, Conversation, Message, Product
from .utils import format_iso

SUGGESTED_PROMPTS = [
    "Find me a project management tool",
    "Compare your premium plans",
    "What's best for a startup?",
    "I need a CRM for a small team",
]


def build_sample_conversations(now: Optional[datetime] = None) -> List[Conversation]:
    """Purpose: Build the demonstration dataset shown when sample data is enabled.
    Inputs/Outputs: Input is an optional reference time; output is a fresh list of
        Conversation objects with timestamps an hour before `now`.
    Side Effects / State: None; every call returns new objects.
    Dependencies: Uses the message/product/comparison models.
    Failure Modes: None.
    If Removed: Demo mode has nothing to display.
    Testing Notes: Verify one conversation with two products and a 5-row comparison.
    """
    # Timestamps are relative so the demo always looks recent.
    now = now or datetime.now(timezone.utc)
    asked_at = format_iso(now - timedelta(seconds=3600))
    answered_at = format_iso(now - timedelta(seconds=3500))
    return [
        Conversation(
            id="sample-1",
            session_id="sample-session-1",
            title="CRM for small team",
            messages=[
                Message(
                    id="sm-1",
                    role="user",
                    content="I need a CRM for a small team of 5 people.",
                    timestamp=asked_at,
                ),
                Message(
                    id="sm-2",
                    role="assistant",
                    content=(
                        "Based on your team size and needs, here are my top CRM recommendations "
                        "that balance functionality with ease of use for small teams."
                    ),
                    products=[
                        Product(
                            name="HubSpot CRM",
                            description="Free CRM with powerful marketing and sales tools built-in.",
                            features=["Contact management", "Email tracking", "Pipeline view", "Free tier"],
                            price="Free - $45/mo",
                            rationale=(
                                "Perfect for small teams starting out with CRM. "
                                "The free tier is generous and covers most needs."
                            ),
                        ),
                        Product(
                            name="Pipedrive",
                            description="Sales-focused CRM with an intuitive visual pipeline interface.",
                            features=["Visual pipeline", "Activity reminders", "Mobile app", "Automation"],
                            price="$14.90/user/mo",
                            rationale=(
                                "Great for teams that want a simple, sales-focused tool "
                                "without the complexity of larger CRMs."
                            ),
                        ),
                    ],
                    comparison=Comparison(
                        attributes=["Price", "Ease of Use", "Integrations", "Mobile App", "Support"],
                        products=[
                            ComparisonProduct(
                                name="HubSpot CRM",
                                values=["Free - $45/mo", "Excellent", "500+", "Yes", "Community + Paid"],
                            ),
                            ComparisonProduct(
                                name="Pipedrive",
                                values=["$14.90/user/mo", "Very Good", "300+", "Yes", "Email + Chat"],
                            ),
                        ],
                    ),
                    timestamp=answered_at,
                ),
            ],
            created_at=asked_at,
            updated_at=answered_at,
        )
    ]
