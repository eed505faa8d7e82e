"""
JSON schema validation for loop result files written by ``capillary detect``.

Uses Pydantic for validation with clear error messages.

Usage:
    from capillary.utils.schemas import validate_loops_file

    result = validate_loops_file("/path/to/loops.json")
    print(len(result.loops))
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


MorphologyName = Literal["Normal", "Tortuous", "Enlarged", "Giant", "Ramified", "Bizarre"]


class LoopRecord(BaseModel):
    """A single loop marker (automatic or user-placed)."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1)
    x: float
    y: float
    morphology: MorphologyName = "Normal"
    diameter: float = Field(0.0, ge=0.0)
    is_outermost: bool = Field(True, alias="isOutermost")


class LoopResultFile(BaseModel):
    """Schema for loop detection JSON files."""
    model_config = ConfigDict(extra="allow")

    image: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    pixels_per_micron: float = Field(1.0, gt=0.0)
    assessment_box_side_px: Optional[float] = Field(None, gt=0.0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    loops: List[LoopRecord] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_loops_inside_image(self) -> "LoopResultFile":
        for loop in self.loops:
            if not (0 <= loop.x <= self.width and 0 <= loop.y <= self.height):
                raise ValueError(
                    f"Loop {loop.id} at ({loop.x:.1f}, {loop.y:.1f}) lies outside "
                    f"the {self.width}x{self.height} image"
                )
        return self


def validate_json_file(
    file_path: Union[str, Path],
    schema: type[BaseModel],
    raise_on_error: bool = True
) -> Optional[BaseModel]:
    """
    Validate a JSON file against a schema.

    Args:
        file_path: Path to JSON file
        schema: Pydantic model class to validate against
        raise_on_error: If True, raise exception on validation error

    Returns:
        Validated model instance, or None if validation fails and raise_on_error=False
    """
    file_path = Path(file_path)

    if not file_path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {file_path}")
        return None

    try:
        with open(file_path, 'r') as f:
            data = json.load(f)
        return schema.model_validate(data)

    except json.JSONDecodeError as e:
        if raise_on_error:
            raise ValueError(f"Invalid JSON in {file_path}: {e}") from e
        return None

    except ValidationError as e:
        if raise_on_error:
            raise ValueError(f"Validation failed for {file_path}: {e}") from e
        return None


def validate_loops_file(
    file_path: Union[str, Path],
    raise_on_error: bool = True
) -> Optional[LoopResultFile]:
    """Validate a loop detection JSON file."""
    return validate_json_file(file_path, LoopResultFile, raise_on_error)
