"""Parameter schemas for the operation families the router knows about.

Field names are snake_case; callers may use the camelCase names of the
calling layer (``bothDirections``, ``thinThickness``...) as aliases.
All linear values are millimetres and all angles degrees.
"""

from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.models.errors import ParameterValidationError


END_CONDITIONS: Dict[str, int] = {
    "Blind": 0,
    "ThroughAll": 1,
    "UpToNext": 2,
    "UpToVertex": 3,
    "UpToSurface": 4,
    "OffsetFromSurface": 5,
    "MidPlane": 6,
}

THIN_WALL_TYPES: Dict[str, int] = {
    "OneSide": 0,
    "TwoSide": 1,
    "MidPlane": 2,
}

REVOLVE_DIRECTIONS: Dict[str, int] = {
    "Forward": 0,
    "Reverse": 1,
    "Both": 2,
}


class OperationParameters(BaseModel):
    """Base for all parameter models."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class ExtrudeParameters(OperationParameters):
    """Boss extrusion from the active sketch."""
    depth: float = Field(gt=0, le=1000, description="Depth in mm")
    reverse: bool = False
    both_directions: bool = False
    depth2: Optional[float] = Field(default=None, gt=0, description="Second direction depth in mm")
    draft: float = Field(default=0.0, ge=-89, le=89, description="Draft angle in degrees")
    draft_outward: bool = False
    draft_while_extruding: bool = False
    offset_reverse: bool = False
    translate_surface: bool = False
    merge: bool = True
    flip_side_to_cut: bool = False
    end_condition: Union[str, int] = "Blind"
    thin_feature: bool = False
    thin_thickness: Optional[float] = Field(default=None, gt=0)
    thin_type: str = "OneSide"
    cap_ends: bool = False
    cap_thickness: Optional[float] = Field(default=None, gt=0)

    @field_validator("end_condition")
    @classmethod
    def validate_end_condition(cls, v: Union[str, int]) -> Union[str, int]:
        """Accept a known end-condition name or its native code."""
        if isinstance(v, int):
            if v not in END_CONDITIONS.values():
                raise ValueError(f"Invalid end condition code: {v}")
            return v
        if v not in END_CONDITIONS:
            raise ValueError(f"Invalid end condition: {v}")
        return v

    @field_validator("thin_type")
    @classmethod
    def validate_thin_type(cls, v: str) -> str:
        if v not in THIN_WALL_TYPES:
            raise ValueError(f"Invalid thin wall type: {v}")
        return v

    @model_validator(mode="after")
    def validate_thin_wall(self) -> "ExtrudeParameters":
        if self.thin_feature and self.thin_thickness is None:
            raise ValueError("thinThickness is required when thinFeature is enabled")
        if self.cap_ends and not self.thin_feature:
            raise ValueError("capEnds requires thinFeature")
        return self

    @property
    def end_condition_code(self) -> int:
        if isinstance(self.end_condition, int):
            return self.end_condition
        return END_CONDITIONS[self.end_condition]

    @property
    def second_depth(self) -> float:
        """Depth of the second direction; mirrors depth when not given."""
        if not self.both_directions:
            return 0.0
        return self.depth2 if self.depth2 is not None else self.depth


class RevolveParameters(OperationParameters):
    """Revolve of the active sketch about an axis."""
    angle: float = Field(gt=0, le=360, description="Angle in degrees")
    axis: Optional[str] = None
    direction: Union[str, int] = "Forward"
    angle2: Optional[float] = Field(default=None, gt=0, le=360)
    merge: bool = True
    thin_feature: bool = False
    thin_thickness: Optional[float] = Field(default=None, gt=0)

    @field_validator("direction")
    @classmethod
    def validate_direction(cls, v: Union[str, int]) -> Union[str, int]:
        if isinstance(v, int):
            if v not in REVOLVE_DIRECTIONS.values():
                raise ValueError(f"Invalid revolve direction code: {v}")
            return v
        if v not in REVOLVE_DIRECTIONS:
            raise ValueError(f"Invalid revolve direction: {v}")
        return v

    @model_validator(mode="after")
    def validate_thin_wall(self) -> "RevolveParameters":
        if self.thin_feature and self.thin_thickness is None:
            raise ValueError("thinThickness is required when thinFeature is enabled")
        return self

    @property
    def direction_code(self) -> int:
        if isinstance(self.direction, int):
            return self.direction
        return REVOLVE_DIRECTIONS[self.direction]


class SweepParameters(OperationParameters):
    """Sweep of a profile sketch along a path sketch."""
    profile_sketch: str = Field(min_length=1)
    path_sketch: str = Field(min_length=1)
    twist_angle: float = 0.0
    merge: bool = True
    thin_feature: bool = False
    thin_thickness: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_thin_wall(self) -> "SweepParameters":
        if self.thin_feature and self.thin_thickness is None:
            raise ValueError("thinThickness is required when thinFeature is enabled")
        return self


class LoftParameters(OperationParameters):
    """Loft through two or more profile sketches."""
    profiles: List[str] = Field(min_length=2)
    guide_curves: List[str] = Field(default_factory=list)
    merge: bool = True
    close: bool = False
    thin_feature: bool = False
    thin_thickness: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_thin_wall(self) -> "LoftParameters":
        if self.thin_feature and self.thin_thickness is None:
            raise ValueError("thinThickness is required when thinFeature is enabled")
        return self


class SketchLineParameters(OperationParameters):
    """Straight sketch segment; coordinates in mm."""
    x1: float
    y1: float
    z1: float = 0.0
    x2: float
    y2: float
    z2: float = 0.0

    @model_validator(mode="after")
    def validate_length(self) -> "SketchLineParameters":
        if (self.x1, self.y1, self.z1) == (self.x2, self.y2, self.z2):
            raise ValueError("Line start and end points coincide")
        return self


class SketchCircleParameters(OperationParameters):
    """Sketch circle by centre and radius; values in mm."""
    x: float
    y: float
    z: float = 0.0
    radius: float = Field(gt=0)


class RawCallParameters(OperationParameters):
    """Pass-through call of an already-known method name."""
    method: str = Field(min_length=1, pattern=r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
    args: List[Any] = Field(default_factory=list)


PARAMETER_MODELS: Dict[str, Type[OperationParameters]] = {
    "extrude": ExtrudeParameters,
    "revolve": RevolveParameters,
    "sweep": SweepParameters,
    "loft": LoftParameters,
    "sketch_line": SketchLineParameters,
    "sketch_circle": SketchCircleParameters,
    "call": RawCallParameters,
}


def validate_parameters(operation: str, parameters: Mapping[str, Any]) -> Optional[OperationParameters]:
    """
    Parse parameters into the family's schema.

    Args:
        operation: Operation family name
        parameters: Raw parameter mapping from the calling layer

    Returns:
        Validated parameter model, or None for families without a schema

    Raises:
        ParameterValidationError: If the parameters do not satisfy the schema
    """
    model = PARAMETER_MODELS.get(operation)
    if model is None:
        return None
    try:
        return model.model_validate(_plain(parameters))
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or operation}: {err['msg']}"
            for err in e.errors()
        ]
        raise ParameterValidationError(
            f"Invalid parameters for {operation}: {'; '.join(errors)}",
            errors=errors,
            cause=e,
        ) from e


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value
