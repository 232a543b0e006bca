"""Direct-call shapes: which methods to invoke, with which positional arguments.

Arguments are in the application's native units and never exceed the
marshaling ceiling. Families whose request cannot be expressed within the
ceiling raise ExternalCallError so a hybrid route falls through to a script.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from src.adapters.handle import MAX_MARSHALED_ARGS
from src.models.data_models import DirectCall
from src.models.errors import ExternalCallError
from src.models.operations import (
    ExtrudeParameters,
    LoftParameters,
    OperationParameters,
    RawCallParameters,
    RevolveParameters,
    SketchCircleParameters,
    SketchLineParameters,
)
from src.scripting.literals import mm_to_m
from src.scripting.script_generator import extrusion_slots, revolve_slots


SELECT = "Extension.SelectByID2"


def _select(name: str, kind: str, append: bool, mark: int) -> DirectCall:
    return DirectCall(SELECT, (name, kind, 0, 0, 0, append, mark, None, 0))


def extrude_calls(params: ExtrudeParameters) -> List[DirectCall]:
    # FeatureExtrusion2 accepts the first twelve slots; the rest must be defaults
    if params.thin_feature:
        raise ExternalCallError("Thin-wall extrusions cannot be expressed as a direct call")
    if (not params.merge or params.offset_reverse or params.translate_surface
            or params.flip_side_to_cut):
        raise ExternalCallError("Extrusion options beyond the twelfth argument require a script")
    args = tuple(value for _, value in extrusion_slots(params)[:12])
    return [DirectCall("FeatureManager.FeatureExtrusion2", args)]


def revolve_calls(params: RevolveParameters) -> List[DirectCall]:
    calls = []
    if params.axis:
        calls.append(_select(params.axis, "AXIS", True, 16))
    calls.append(DirectCall(
        "FeatureManager.FeatureRevolve2",
        tuple(value for _, value in revolve_slots(params)),
    ))
    return calls


def loft_calls(params: LoftParameters) -> List[DirectCall]:
    calls = [_select(profile, "SKETCH", i > 0, 1) for i, profile in enumerate(params.profiles)]
    calls += [_select(guide, "SKETCH", True, 2) for guide in params.guide_curves]
    calls.append(DirectCall("FeatureManager.InsertProtrusionLoft", (
        params.close,
        False,
        False,
        1,
        0,
        0,
        params.thin_feature,
        mm_to_m(params.thin_thickness) if params.thin_feature else 0,
        0,
        0,
        params.merge,
        True,
    )))
    return calls


def sketch_line_calls(params: SketchLineParameters) -> List[DirectCall]:
    return [DirectCall("SketchManager.CreateLine", tuple(
        mm_to_m(v) for v in (params.x1, params.y1, params.z1, params.x2, params.y2, params.z2)
    ))]


def sketch_circle_calls(params: SketchCircleParameters) -> List[DirectCall]:
    return [DirectCall("SketchManager.CreateCircleByRadius", tuple(
        mm_to_m(v) for v in (params.x, params.y, params.z, params.radius)
    ))]


def raw_calls(params: RawCallParameters) -> List[DirectCall]:
    return [DirectCall(params.method, tuple(params.args))]


BUILDERS: Dict[str, Callable[[Any], List[DirectCall]]] = {
    "extrude": extrude_calls,
    "revolve": revolve_calls,
    "loft": loft_calls,
    "sketch_line": sketch_line_calls,
    "sketch_circle": sketch_circle_calls,
    "call": raw_calls,
}


def build_direct_calls(
    family: str,
    model: Optional[OperationParameters],
    parameters: Optional[Mapping[str, Any]] = None
) -> List[DirectCall]:
    """
    Build the ordered calls that perform ``family`` directly.

    The last call produces the operation's result; earlier ones prepare
    selections. Families without a schema are invoked by name with their
    parameter values in the order given.

    Raises:
        ExternalCallError: If the request has no direct-call shape
    """
    if model is None:
        values = tuple((parameters or {}).values())
        calls = [DirectCall(family, values)]
    else:
        builder = BUILDERS.get(family)
        if builder is None:
            raise ExternalCallError(f"{family} has no direct-call shape")
        calls = builder(model)

    for call in calls:
        if len(call.args) > MAX_MARSHALED_ARGS:
            raise ExternalCallError(
                f"{call.method} needs {len(call.args)} arguments; "
                f"the bridge marshals at most {MAX_MARSHALED_ARGS}"
            )
    return calls


def script_target(family: str, model: Optional[OperationParameters], parameters: Optional[Mapping[str, Any]] = None) -> DirectCall:
    """The single call a generic script should perform for a family without a template."""
    if model is None:
        return DirectCall(family, tuple((parameters or {}).values()))
    if isinstance(model, RawCallParameters):
        return DirectCall(model.method, tuple(model.args))
    return build_direct_calls(family, model)[-1]


