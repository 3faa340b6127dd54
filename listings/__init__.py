"""
Listings package.

The store client keeps a live view of the remote collection; the repository
turns each snapshot into the sorted projection the rest of the app reads.
"""

from .models import Category, Condition, Listing, ListingFields
from .repository import ListingRepository, sort_listings
from .store_client import ListingStoreClient, ListingSubscription

__all__ = [
    "Category",
    "Condition",
    "Listing",
    "ListingFields",
    "ListingRepository",
    "ListingStoreClient",
    "ListingSubscription",
    "sort_listings",
]
