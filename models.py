"""
models.py — Python dataclasses for the backyard application.

Maps SQLite rows (database.py) to the nested layout document
(category → plant → records) served by layout_store.py.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List


@dataclass
class Record:
    """One treatment/observation entry in a plant's history."""
    id: Optional[int] = None
    date: str = ""
    treatment: str = ""
    notes: str = ""
    ph_level: str = ""
    moisture_level: str = ""
    photo_data_uri: Optional[str] = None
    next_scheduled_fertilization_date: Optional[str] = None
    trunk_diameter: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            date=row['date'],
            treatment=row['treatment'],
            notes=row['notes'] or '',
            ph_level=row['ph_level'] or '',
            moisture_level=row['moisture_level'] or '',
            photo_data_uri=row['photo_data_uri'],
            next_scheduled_fertilization_date=row['next_scheduled_fertilization_date'],
            trunk_diameter=row['trunk_diameter'],
        )

    def to_dict(self):
        return asdict(self)


@dataclass
class Position:
    """Marker position on the map, in viewBox units (0-100)."""
    x: float = 50.0
    y: float = 50.0


@dataclass
class Plant:
    """A plant placed on the backyard map."""
    id: str = ""
    label: str = ""
    type: str = ""
    position: Position = field(default_factory=Position)
    records: List[Record] = field(default_factory=list)

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            label=row['label'],
            type=row['type'],
            position=Position(x=row['pos_x'], y=row['pos_y']),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'label': self.label,
            'type': self.type,
            'position': {'x': self.position.x, 'y': self.position.y},
            'records': [r.to_dict() for r in self.records],
        }


@dataclass
class Category:
    """Group of plants sharing a marker color."""
    key: str = ""
    name: str = ""
    color: str = "#16A34A"
    sort_order: int = 0
    plants: List[Plant] = field(default_factory=list)

    @classmethod
    def from_row(cls, row):
        return cls(
            key=row['key'],
            name=row['name'],
            color=row['color'],
            sort_order=row['sort_order'],
        )

    def to_dict(self):
        return {
            'name': self.name,
            'color': self.color,
            'plants': [p.to_dict() for p in self.plants],
        }
