from datetime import datetime
from enum import Enum
from typing import NewType, Optional

from pydantic import StrictInt, computed_field, field_validator, model_validator

from ecolend.domain.base import Entity, optional_text, require_text, utcnow

EquipmentId = NewType("EquipmentId", str)


class EquipmentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    DISCARDED = "DISCARDED"


UPDATABLE_FIELDS = ("name", "category", "certification", "status", "total_quantity")


class Equipment(Entity):
    """A physical, possibly multi-unit inventory item.

    Rules:
      - name and category are required
      - quantities are non-negative and in-use never exceeds the total
      - discarded equipment cannot be loaned
    """

    id: EquipmentId
    name: str
    category: str
    certification: Optional[str] = None
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    total_quantity: StrictInt
    quantity_in_use: StrictInt = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v):
        return require_text(v, "Equipment name is required.")

    @field_validator("category", mode="before")
    @classmethod
    def _check_category(cls, v):
        return require_text(v, "Equipment category is required.")

    @field_validator("certification", mode="before")
    @classmethod
    def _normalize_certification(cls, v):
        return optional_text(v)

    @model_validator(mode="after")
    def _check_quantities(self):
        if self.total_quantity < 0:
            raise ValueError("Total quantity must be non-negative.")
        if self.quantity_in_use < 0:
            raise ValueError("Quantity in use must be non-negative.")
        if self.quantity_in_use > self.total_quantity:
            raise ValueError("Quantity in use cannot exceed total quantity.")
        return self

    @computed_field
    @property
    def quantity_available(self) -> int:
        return self.total_quantity - self.quantity_in_use

    @property
    def is_discarded(self) -> bool:
        return self.status == EquipmentStatus.DISCARDED

    def can_be_loaned_out(self) -> bool:
        return not self.is_discarded and self.quantity_available > 0

    def update(self, **changes) -> "Equipment":
        """New validated instance with ``changes`` applied and updated_at refreshed.

        Only descriptive fields and the total may change here; in-use units
        move through loans.
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise TypeError(f"Cannot update equipment fields: {', '.join(sorted(unknown))}")
        return self._replace(**changes, updated_at=utcnow())
