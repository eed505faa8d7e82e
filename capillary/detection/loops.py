"""
Loop records shared with the annotation layer.

Automatically detected loops use the same record shape as user-placed loop
markers so the annotation list can hold both.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class Morphology(str, Enum):
    """Capillary loop morphologies offered by the annotator."""
    NORMAL = "Normal"
    TORTUOUS = "Tortuous"
    ENLARGED = "Enlarged"
    GIANT = "Giant"
    RAMIFIED = "Ramified"
    BIZARRE = "Bizarre"


@dataclass
class DetectedLoop:
    """
    A capillary loop position in original image coordinates.

    Attributes:
        x: Column of the loop tip in original image pixels
        y: Row of the loop tip in original image pixels
        morphology: Loop morphology; detection always reports Normal
        diameter: Loop diameter in pixels; 0 until measured
        is_outermost: Whether the loop belongs to the outermost row
        id: Unique record id
    """
    x: float
    y: float
    morphology: Morphology = Morphology.NORMAL
    diameter: float = 0.0
    is_outermost: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the annotator's loop record (camelCase keys)."""
        return {
            'id': self.id,
            'x': float(self.x),
            'y': float(self.y),
            'morphology': Morphology(self.morphology).value,
            'diameter': float(self.diameter),
            'isOutermost': bool(self.is_outermost),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectedLoop":
        """Build from an annotator loop record; a missing id gets a new uuid."""
        kwargs = dict(
            x=float(data['x']),
            y=float(data['y']),
            morphology=Morphology(data.get('morphology', Morphology.NORMAL.value)),
            diameter=float(data.get('diameter', 0.0)),
            is_outermost=bool(data.get('isOutermost', True)),
        )
        if data.get('id'):
            kwargs['id'] = str(data['id'])
        return cls(**kwargs)
