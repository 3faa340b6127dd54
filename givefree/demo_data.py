from __future__ import annotations

from typing import List, Tuple

from listings.models import Category, Condition, ListingFields

# (fields, image color) pairs offered when the collection is empty.
DEMO_LISTINGS: List[Tuple[ListingFields, str]] = [
    (
        ListingFields(
            title="Mid-Century Modern Armchair",
            description=(
                "Vintage teal armchair from the 60s. Structure is solid wood (teak). "
                "The upholstery is original but has some cat scratches on the left arm."
            ),
            condition=Condition.FAIR,
            category=Category.FURNITURE,
            location="Queen West, Toronto",
            dimensions='30" W x 32" D x 35" H',
            availability="Weeknights after 6pm",
        ),
        "teal",
    ),
    (
        ListingFields(
            title="Box of Sci-Fi Novels",
            description=(
                "About 20 paperback science fiction books. Isaac Asimov, Frank Herbert, etc. "
                "Read once, good condition."
            ),
            condition=Condition.GOOD,
            category=Category.BOOKS,
            location="Annex, Toronto",
            dimensions="Standard Box",
            availability="Porch pickup anytime",
        ),
        "indigo",
    ),
]
