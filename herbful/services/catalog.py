"""
Treatment Catalog.

Listing, search, CRUD and image handling for treatments. Reads pull the
whole collection and filter, sort and paginate in memory.
"""

import dataclasses
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from herbful.errors import (
    AlreadyExists,
    HerbfulError,
    NotFound,
    UpstreamReadFailed,
    UpstreamWriteFailed,
    ValidationFailed,
)
from herbful.models.page import Page
from herbful.models.treatment import EDITABLE_FIELDS, UNSAFE_ID_CHARS, SourceInfo, Treatment
from herbful.registry.symptom_index import SymptomIndex
from herbful.services.validation import validate_image, validate_treatment
from herbful.utils.clock import now_iso, parse_iso
from herbful.utils.pagination import paginate
from herbful.utils.storage import BlobStore, CollectionStore

logger = logging.getLogger(__name__)

SORT_KEYS: Dict[str, Callable[[Treatment], Any]] = {
    "name": lambda t: t.name.lower(),
    "createdAt": lambda t: parse_iso(t.created_at),
    "averageRating": lambda t: t.average_rating,
    "totalReviews": lambda t: t.total_reviews,
    "sourceType": lambda t: t.source_type.lower(),
}
DEFAULT_SORT = "createdAt"
SORT_ORDERS = ("asc", "desc")


def slugify(name: str) -> str:
    """Derive a treatment id: lowercase, whitespace runs to hyphens, unsafe key characters removed."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return UNSAFE_ID_CHARS.sub("", slug)


@dataclass
class ImageUpload:
    """An image file submitted with the treatment form."""
    filename: str
    content_type: str
    data: bytes

    def validate(self) -> None:
        validate_image(self.filename, self.content_type, len(self.data))


def _stored_value(attr: str, value: Any) -> Any:
    if attr == "sources":
        return [s.to_dict() if isinstance(s, SourceInfo) else s for s in value]
    if isinstance(value, list):
        return list(value)
    return value


class TreatmentCatalog:
    """
    Catalog operations over the ``treatments`` collection.

    Every create, update and delete refreshes the symptom index for the
    treatment it touched.
    """

    def __init__(
        self,
        store: CollectionStore,
        symptom_index: SymptomIndex,
        blob_store: Optional[BlobStore] = None,
        treatments_path: str = "treatments",
        images_path: str = "treatments/images",
        clock: Callable[[], str] = now_iso
    ):
        """
        Args:
            store: Collection store holding the treatments
            symptom_index: Index refreshed after every mutation
            blob_store: Image storage; image operations fail without one
            treatments_path: Path of the treatments collection
            images_path: Blob prefix for treatment images
            clock: Returns the ISO timestamp used for createdAt/updatedAt
        """
        self.store = store
        self.symptom_index = symptom_index
        self.blob_store = blob_store
        self.treatments_path = treatments_path
        self.images_path = images_path
        self.clock = clock

    def _path(self, treatment_id: str) -> str:
        return f"{self.treatments_path}/{treatment_id}"

    def all_treatments(self) -> List[Treatment]:
        """Load every treatment, skipping records that fail to parse."""
        raw = self.store.get(self.treatments_path) or {}
        treatments = []
        for treatment_id, data in raw.items():
            if not isinstance(data, dict):
                logger.warning(f"Skipping treatment {treatment_id}: record is not an object")
                continue
            try:
                treatments.append(Treatment.from_dict(treatment_id, data))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping treatment {treatment_id}: {e}")
        return treatments

    def list_treatments(
        self,
        page: int = 1,
        page_size: int = 10,
        search_term: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None
    ) -> Page:
        """
        One page of the catalog.

        Args:
            page: 1-based page number
            page_size: Treatments per page
            search_term: Case-insensitive substring matched against the
                name, any benefit or any symptom
            sort_by: name, createdAt, averageRating, totalReviews or
                sourceType; unknown values fall back to createdAt
            sort_order: "asc" or "desc". Defaults to "desc" when sort_by
                is omitted (newest first) and "asc" otherwise.

        Returns:
            Page of Treatment with counts over the whole filtered set
        """
        if sort_order is not None and sort_order not in SORT_ORDERS:
            raise ValidationFailed({"sortOrder": "Sort order must be 'asc' or 'desc'"})

        treatments = self.all_treatments()

        if search_term:
            needle = search_term.lower()
            treatments = [
                t for t in treatments
                if needle in t.name.lower()
                or any(needle in b.lower() for b in t.benefits)
                or any(needle in s.lower() for s in t.symptoms)
            ]

        if sort_by is None:
            descending = sort_order != "asc"
        else:
            descending = sort_order == "desc"
        key = SORT_KEYS.get(sort_by or DEFAULT_SORT, SORT_KEYS[DEFAULT_SORT])
        treatments = sorted(treatments, key=key, reverse=descending)

        items, total_count, total_pages = paginate(treatments, page, page_size)
        logger.debug(
            f"Listed treatments page {page}: {len(items)} of {total_count} "
            f"(search={search_term!r}, sort={sort_by or DEFAULT_SORT} {'desc' if descending else 'asc'})"
        )
        return Page(items=items, total_count=total_count, total_pages=total_pages)

    def get_treatment(self, treatment_id: str) -> Treatment:
        """
        Fetch one treatment.

        Raises:
            NotFound: If the id is blank or nothing is stored under it
            UpstreamReadFailed: If the stored record cannot be parsed
        """
        if not treatment_id or not treatment_id.strip():
            raise NotFound("treatment", treatment_id or "")

        data = self.store.get(self._path(treatment_id))
        if data is None:
            logger.warning(f"Treatment {treatment_id!r} not found at {self._path(treatment_id)}")
            raise NotFound("treatment", treatment_id)
        if not isinstance(data, dict):
            raise UpstreamReadFailed(f"Treatment {treatment_id} is not an object")

        try:
            return Treatment.from_dict(treatment_id, data)
        except (TypeError, ValueError) as e:
            raise UpstreamReadFailed(
                f"Treatment {treatment_id} is malformed: {e}",
                details={"id": treatment_id}
            )

    def create_treatment(
        self,
        fields: Dict[str, Any],
        treatment_id: Optional[str] = None,
        image: Optional[ImageUpload] = None
    ) -> Treatment:
        """
        Create a treatment.

        The id is the slug of the name unless ``treatment_id`` is given.
        An image, if supplied, is uploaded after the record is written;
        an upload failure leaves the treatment in place without an image.

        Raises:
            ValidationFailed: If the form fields or image are invalid
            AlreadyExists: If a treatment with the same id is stored
        """
        cleaned = validate_treatment(fields)
        if image is not None:
            image.validate()

        new_id = (treatment_id or slugify(cleaned["name"])).strip()
        if not new_id or UNSAFE_ID_CHARS.search(new_id):
            raise ValidationFailed({"id": f"Cannot derive a valid treatment id from {new_id!r}"})
        if self.store.exists(self._path(new_id)):
            raise AlreadyExists("treatment", new_id)

        now = self.clock()
        treatment = Treatment(id=new_id, created_at=now, updated_at=now, **cleaned)
        self.store.set(self._path(new_id), treatment.to_dict())
        self.symptom_index.reindex_treatment(new_id, treatment.symptoms)
        logger.info(f"Created treatment {new_id} - '{treatment.name}'")

        if image is not None:
            try:
                url = self.upload_image(new_id, image)
                self.store.update(self._path(new_id), {"imageUrl": url})
                treatment.image_url = url
            except HerbfulError as e:
                logger.warning(f"Treatment {new_id} created but image upload failed: {e}")

        return treatment

    def update_treatment(
        self,
        treatment_id: str,
        changes: Dict[str, Any],
        image: Optional[ImageUpload] = None
    ) -> Treatment:
        """
        Apply a partial update.

        Only fields whose value changed are written; fields on the stored
        record that are not part of the form survive. A new image is
        uploaded before the record is touched, and the replaced image is
        deleted on a best-effort basis.

        Args:
            treatment_id: Treatment to update
            changes: Editable fields to change, keyed by attribute name
            image: Replacement image

        Raises:
            NotFound: If the treatment does not exist
            ValidationFailed: If the merged fields are invalid
            UpstreamWriteFailed: If the new image cannot be uploaded
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed({f: "Field cannot be edited" for f in sorted(unknown)})

        existing = self.get_treatment(treatment_id)
        merged = {attr: getattr(existing, attr) for attr in EDITABLE_FIELDS}
        merged.update(changes)
        cleaned = validate_treatment(merged)

        if image is not None:
            image.validate()
            cleaned["image_url"] = self.upload_image(treatment_id, image)

        patch = {}
        for attr, key in EDITABLE_FIELDS.items():
            if cleaned[attr] != getattr(existing, attr):
                patch[key] = _stored_value(attr, cleaned[attr])

        now = self.clock()
        patch["updatedAt"] = now
        self.store.update(self._path(treatment_id), patch)
        self.symptom_index.reindex_treatment(treatment_id, cleaned["symptoms"])
        logger.info(f"Updated treatment {treatment_id}: {sorted(k for k in patch if k != 'updatedAt')}")

        if existing.image_url and existing.image_url != cleaned["image_url"]:
            self._discard_image(existing.image_url)

        return dataclasses.replace(existing, updated_at=now, **cleaned)

    def delete_treatment(self, treatment_id: str) -> None:
        """
        Delete a treatment and drop it from the symptom index.

        Reviews that reference it are kept.

        Raises:
            NotFound: If the treatment does not exist
        """
        existing = self.get_treatment(treatment_id)
        self.store.delete(self._path(treatment_id))
        self.symptom_index.remove_treatment(treatment_id)
        logger.info(f"Deleted treatment {treatment_id} - '{existing.name}'")

        if existing.image_url:
            self._discard_image(existing.image_url)

    def remove_treatment_image(self, treatment_id: str) -> Treatment:
        """Detach and delete a treatment's image."""
        existing = self.get_treatment(treatment_id)
        if not existing.image_url:
            return existing

        now = self.clock()
        self.store.update(self._path(treatment_id), {"imageUrl": None, "updatedAt": now})
        self._discard_image(existing.image_url)
        logger.info(f"Removed image from treatment {treatment_id}")
        return dataclasses.replace(existing, image_url=None, updated_at=now)

    def upload_image(self, treatment_id: str, image: ImageUpload) -> str:
        """
        Store an image under ``<images_path>/<id>/<millis>_<filename>``.

        Returns:
            URL of the stored image

        Raises:
            UpstreamWriteFailed: If no blob store is configured or the upload fails
        """
        if self.blob_store is None:
            raise UpstreamWriteFailed("No blob store configured for treatment images")
        filename = os.path.basename(image.filename.replace("\\", "/"))
        path = f"{self.images_path}/{treatment_id}/{int(time.time() * 1000)}_{filename}"
        return self.blob_store.put(image.data, path, image.content_type)

    def _discard_image(self, url: str) -> None:
        if self.blob_store is None:
            logger.warning(f"No blob store configured, leaving image {url}")
            return
        try:
            self.blob_store.delete(url)
        except HerbfulError as e:
            logger.warning(f"Failed to delete old image {url}: {e}")
