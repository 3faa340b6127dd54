"""Grounding context: the fixed instruction block built from one listing."""

from __future__ import annotations

from listings.models import Listing

CLAIM_ACTION_LABEL = "Claim / Message Owner"
MISSING_VALUE = "Not specified"

_POLICY = f"""YOUR GOAL:
Answer the potential taker's questions based strictly on the item details above.

RULES:
- Only use the item details above. Never invent or guess facts about the item.
- Assume the item is still available. You have no information that it has been claimed.
- If a question cannot be answered from the item details, say so politely and offer to pass the question on to the owner.
- If the person sounds keen to take the item, tell them to use the "{CLAIM_ACTION_LABEL}" button."""


def _value(text: object) -> str:
    if text is None or text == "":
        return MISSING_VALUE
    return str(text)


def build_grounding_context(listing: Listing) -> str:
    """Render the system instruction for one listing.

    Pure and deterministic. Field values are copied verbatim; this block is
    the only place the endpoint learns anything about the item.
    """
    details = "\n".join(
        [
            f"Title: {_value(listing.title)}",
            f"Category: {_value(listing.category.value)}",
            f"Description: {_value(listing.description)}",
            f"Condition: {_value(listing.condition.value)}",
            f"Dimensions: {_value(listing.dimensions)}",
            f"Pickup Location: {_value(listing.location)}",
            f"Availability: {_value(listing.availability)}",
        ]
    )
    return (
        "You are a friendly and helpful AI assistant helping to give away a free item.\n\n"
        f"ITEM DETAILS:\n{details}\n\n"
        f"{_POLICY}\n"
    )


def greeting_for(listing: Listing) -> str:
    return (
        f"Hi! I'm the AI assistant for this {listing.title}. "
        "Ask me anything about the condition, dimensions, or pickup details!"
    )
