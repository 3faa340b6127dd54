from __future__ import annotations

from typing import Iterable, List

from pydantic import ValidationError as PydanticValidationError

from listings.models import Listing
from storage.documents import StoredDocument
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)


def listing_from_document(document: StoredDocument) -> Listing:
    return Listing.model_validate({**document.data, "id": document.id})


def validate_listing_documents(documents: Iterable[StoredDocument]) -> List[Listing]:
    """Coerce raw store documents into listings, logging and dropping invalid entries."""
    cleaned: List[Listing] = []
    for document in documents:
        try:
            cleaned.append(listing_from_document(document))
        except PydanticValidationError as exc:
            logger.warning(
                "listing_validation_failed",
                extra={"document_id": document.id, "error": str(exc)[:200]},
            )
    return cleaned
