"""
Symptom Index - inverted index from symptom to treatments.

Derived from the ``symptoms`` field of every treatment and stored as one
node (``symptoms``) keyed by a sanitized, lowercased symptom name.
"""

import logging
from typing import Callable, Dict, List, Optional

from herbful.models.symptom import SymptomEntry
from herbful.models.treatment import UNSAFE_ID_CHARS, as_list
from herbful.utils.clock import now_iso
from herbful.utils.storage import CollectionStore

logger = logging.getLogger(__name__)


def sanitize_symptom_key(symptom: str) -> str:
    """
    Turn a symptom name into its index key.

    Lowercases so "Headache" and "headache" share one entry, replaces
    every unsafe key character with ``_``, then trims.
    """
    return UNSAFE_ID_CHARS.sub("_", symptom.lower()).strip()


class SymptomIndex:
    """
    Maintains the symptom -> treatment ids index.

    Every mutation loads the whole node, edits it in memory and writes
    the whole node back.
    """

    def __init__(
        self,
        store: CollectionStore,
        symptoms_path: str = "symptoms",
        treatments_path: str = "treatments",
        clock: Callable[[], str] = now_iso
    ):
        """
        Args:
            store: Collection store holding both nodes
            symptoms_path: Path of the index node
            treatments_path: Path of the treatments collection (for rebuilds)
            clock: Returns the ISO timestamp stamped on renamed treatments
        """
        self.store = store
        self.symptoms_path = symptoms_path
        self.treatments_path = treatments_path
        self.clock = clock

    def load(self) -> Dict[str, SymptomEntry]:
        """
        Load the index.

        Malformed entries are dropped with a warning; they disappear from
        storage on the next save.
        """
        raw = self.store.get(self.symptoms_path) or {}
        if not isinstance(raw, dict):
            logger.warning(f"Symptom index at {self.symptoms_path} is not an object, ignoring it")
            return {}

        index = {}
        for key, data in raw.items():
            try:
                index[key] = SymptomEntry.from_dict(data)
            except ValueError as e:
                logger.warning(f"Dropping symptom entry {key}: {e}")
        return index

    def save(self, index: Dict[str, SymptomEntry]) -> None:
        """Overwrite the whole index node."""
        self.store.set(
            self.symptoms_path,
            {key: entry.to_dict() for key, entry in index.items() if entry.treatment_ids}
        )
        logger.debug(f"Symptom index saved: {len(index)} entries")

    @staticmethod
    def _detach(index: Dict[str, SymptomEntry], treatment_id: str) -> None:
        for key in list(index):
            entry = index[key]
            entry.treatment_ids = [tid for tid in entry.treatment_ids if tid != treatment_id]
            if not entry.treatment_ids:
                del index[key]

    @staticmethod
    def _attach(index: Dict[str, SymptomEntry], treatment_id: str, symptoms: List[str]) -> None:
        for symptom in symptoms:
            if not symptom or not str(symptom).strip():
                continue
            name = str(symptom).strip()
            key = sanitize_symptom_key(name)
            entry = index.get(key)
            if entry is None:
                entry = SymptomEntry(name=name)
                index[key] = entry
            if treatment_id not in entry.treatment_ids:
                entry.treatment_ids.append(treatment_id)

    def reindex_treatment(self, treatment_id: str, symptoms: List[str]) -> None:
        """
        Point the index at a treatment's current symptoms.

        Removes the treatment from every entry (pruning entries left
        empty) and adds it back under each symptom in ``symptoms``.

        Args:
            treatment_id: Treatment whose symptoms changed
            symptoms: The treatment's full, current symptom list
        """
        index = self.load()
        self._detach(index, treatment_id)
        self._attach(index, treatment_id, symptoms)
        self.save(index)
        logger.info(f"Reindexed {len(symptoms)} symptoms for treatment {treatment_id}")

    def remove_treatment(self, treatment_id: str) -> None:
        """Remove a treatment from every entry."""
        index = self.load()
        self._detach(index, treatment_id)
        self.save(index)
        logger.info(f"Removed treatment {treatment_id} from symptom index")

    def rebuild(self) -> int:
        """
        Rebuild the index from scratch out of every treatment record.

        The previous index is discarded. Also merges entries that only
        differed by case in older data.

        Returns:
            Number of entries in the rebuilt index
        """
        treatments = self.store.get(self.treatments_path) or {}
        index: Dict[str, SymptomEntry] = {}
        for treatment_id, data in treatments.items():
            if not isinstance(data, dict):
                continue
            self._attach(index, treatment_id, [str(s) for s in as_list(data.get("symptoms"))])

        self.save(index)
        logger.info(f"Rebuilt symptom index: {len(index)} symptoms across {len(treatments)} treatments")
        return len(index)

    def rename_symptom(self, old_name: str, new_name: str) -> int:
        """
        Rename a symptom in every treatment that lists it, then rebuild.

        Matching is exact on the trimmed name (case-sensitive).

        Returns:
            Number of treatments changed
        """
        if not old_name or not new_name or old_name.strip() == new_name.strip():
            return 0

        old = old_name.strip()
        new = new_name.strip()
        treatments = self.store.get(self.treatments_path) or {}

        changed = 0
        for treatment_id, data in treatments.items():
            if not isinstance(data, dict):
                continue
            symptoms = [str(s) for s in as_list(data.get("symptoms"))]
            if old not in symptoms:
                continue
            self.store.update(
                f"{self.treatments_path}/{treatment_id}",
                {
                    "symptoms": [new if s == old else s for s in symptoms],
                    "updatedAt": self.clock()
                }
            )
            changed += 1

        logger.info(f"Renamed symptom '{old}' -> '{new}' in {changed} treatments")
        self.rebuild()
        return changed

    def lookup(self, symptom: str) -> List[str]:
        """Treatment ids listed under a symptom (any casing)."""
        entry: Optional[SymptomEntry] = self.load().get(sanitize_symptom_key(symptom.strip()))
        return list(entry.treatment_ids) if entry else []

    def check(self) -> List[str]:
        """
        Audit the stored index node without modifying it.

        Returns:
            Human-readable problems; empty when the node is well-formed
        """
        raw = self.store.get(self.symptoms_path)
        if raw is None:
            return []
        if not isinstance(raw, dict):
            return [f"{self.symptoms_path} is not an object"]

        problems = []
        for key, data in raw.items():
            if not isinstance(data, dict):
                problems.append(f"{key}: not an object")
            elif "name" not in data or "treatmentIds" not in data:
                problems.append(f"{key}: missing name or treatmentIds")
            elif not isinstance(data["treatmentIds"], list):
                problems.append(f"{key}: treatmentIds is not a list")
            elif key != sanitize_symptom_key(str(data["name"]).strip()):
                problems.append(f"{key}: key does not match name {data['name']!r}")
        return problems
