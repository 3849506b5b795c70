"""
Symptom index entry.

Derived data: one entry per sanitized symptom key, listing the
treatments whose ``symptoms`` field names that symptom.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class SymptomEntry:
    name: str  # Display form, first-seen casing wins
    treatment_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "SymptomEntry":
        """
        Raises:
            ValueError: If the stored entry is not a name + id list
        """
        if not isinstance(data, dict) or "name" not in data:
            raise ValueError(f"Malformed symptom entry: {data!r}")
        ids = data.get("treatmentIds", [])
        if isinstance(ids, dict):
            ids = list(ids.values())
        if not isinstance(ids, list):
            raise ValueError(f"Malformed treatmentIds: {ids!r}")
        return cls(name=str(data["name"]), treatment_ids=[str(i) for i in ids])

    def to_dict(self) -> dict:
        return {"name": self.name, "treatmentIds": list(self.treatment_ids)}
