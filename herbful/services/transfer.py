"""
Bulk treatment export, import and collection clearing.
"""

import json
import logging
import os
from typing import Dict, List

from herbful.errors import UpstreamReadFailed, ValidationFailed
from herbful.models.treatment import UNSAFE_ID_CHARS, Treatment
from herbful.registry.symptom_index import SymptomIndex
from herbful.utils.storage import CollectionStore

logger = logging.getLogger(__name__)


class TreatmentTransfer:
    """
    Moves the treatments collection to and from a JSON file.

    The file holds a list of records, each with its ``id`` inlined.
    """

    def __init__(
        self,
        store: CollectionStore,
        symptom_index: SymptomIndex,
        treatments_path: str = "treatments",
        reviews_path: str = "reviews"
    ):
        self.store = store
        self.symptom_index = symptom_index
        self.treatments_path = treatments_path
        self.reviews_path = reviews_path

    def export_treatments(self, output_path: str) -> int:
        """
        Write every treatment record to ``output_path``.

        Returns:
            Number of treatments exported
        """
        raw = self.store.get(self.treatments_path) or {}
        records = [{"id": treatment_id, **data} for treatment_id, data in raw.items() if isinstance(data, dict)]

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)

        logger.info(f"Exported {len(records)} treatments to {output_path}")
        return len(records)

    def _read_records(self, input_path: str) -> List[Dict]:
        try:
            with open(input_path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except (OSError, ValueError) as e:
            raise UpstreamReadFailed(f"Cannot read {input_path}: {e}", details={"path": input_path})

        if not isinstance(records, list):
            raise ValidationFailed({"file": "Expected a JSON list of treatments"})

        errors = {}
        cleaned = []
        seen = set()
        for i, record in enumerate(records):
            if not isinstance(record, dict) or not str(record.get("id", "")).strip():
                errors[f"[{i}]"] = "Record must be an object with an id"
                continue
            treatment_id = str(record["id"]).strip()
            if UNSAFE_ID_CHARS.search(treatment_id):
                errors[f"[{i}]"] = f"Treatment id {treatment_id!r} contains . # $ / [ or ]"
                continue
            if treatment_id in seen:
                errors[f"[{i}]"] = f"Duplicate treatment id {treatment_id!r}"
                continue
            seen.add(treatment_id)
            try:
                Treatment.from_dict(treatment_id, record)
            except (TypeError, ValueError) as e:
                errors[f"[{i}]"] = str(e)
                continue
            cleaned.append({**record, "id": treatment_id})
        if errors:
            raise ValidationFailed(errors)
        return cleaned

    def import_treatments(self, input_path: str) -> int:
        """
        Replace the treatments collection with the file's records.

        The whole file is checked before anything is written. The symptom
        index is rebuilt afterwards.

        Returns:
            Number of treatments imported

        Raises:
            ValidationFailed: If any record is malformed or ids are unusable or repeated
            UpstreamReadFailed: If the file cannot be read
        """
        records = self._read_records(input_path)

        self.store.delete(self.treatments_path)
        logger.info("Cleared existing treatments")

        for record in records:
            data = {k: v for k, v in record.items() if k != "id"}
            self.store.set(f"{self.treatments_path}/{record['id']}", data)
            logger.debug(f"Imported treatment {record['id']}")

        self.symptom_index.rebuild()
        logger.info(f"Imported {len(records)} treatments from {input_path}")
        return len(records)

    def clear(self) -> Dict[str, int]:
        """
        Delete all treatments, reviews and the symptom index.

        Returns:
            Count of deleted treatments and reviews
        """
        counts = {
            "treatments": len(self.store.get(self.treatments_path) or {}),
            "reviews": len(self.store.get(self.reviews_path) or {}),
        }
        self.store.delete(self.treatments_path)
        self.store.delete(self.reviews_path)
        self.store.delete(self.symptom_index.symptoms_path)
        logger.info(f"Cleared {counts['treatments']} treatments and {counts['reviews']} reviews")
        return counts
