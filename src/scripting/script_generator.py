"""Deterministic generation of VBA scripts from structured parameters.

Scripts exist because the automation bridge cannot marshal more than about
twelve positional arguments per call. A generated script runs inside the
application, where the full-width feature methods can be called directly.

The text depends only on the family and its parameters, so identical
requests always yield byte-identical scripts. Linear values are converted
from millimetres to metres and angles from degrees to radians here and
nowhere earlier.
"""

import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from src.models.data_models import GeneratedScript
from src.models.errors import ParameterValidationError, ScriptGenerationError
from src.models.operations import (
    THIN_WALL_TYPES,
    ExtrudeParameters,
    LoftParameters,
    OperationParameters,
    RevolveParameters,
    SweepParameters,
    validate_parameters,
)
from src.scripting.literals import check_identifier, deg_to_rad, mm_to_m, vba_literal


Slot = Tuple[str, Any]

INDENT = "    "

_PREAMBLE = [
    "Option Explicit",
    "",
]

_OPEN_DOCUMENT = [
    "    Dim swApp As Object",
    "    Dim swModel As Object",
    "    Dim swFeatureMgr As Object",
    "    Dim swFeature As Object",
    "    Dim boolStatus As Boolean",
    "",
    "    Set swApp = Application.SldWorks",
    "    Set swModel = swApp.ActiveDoc",
    "    If swModel Is Nothing Then",
    "        Err.Raise vbObjectError + 513, , \"No active document\"",
    "    End If",
    "",
    "    Set swFeatureMgr = swModel.FeatureManager",
]

_FINISH = [
    "",
    "    If swFeature Is Nothing Then",
    "        Err.Raise vbObjectError + 514, , \"Feature creation failed\"",
    "    End If",
    "",
    "    swModel.ClearSelection2 True",
    "    swModel.EditRebuild3",
    "End Sub",
]

_SELECT_LATEST_SKETCH = [
    "",
    "Function SelectLatestSketch(swModel As Object) As Boolean",
    "    Dim i As Long",
    "    Dim swFeat As Object",
    "",
    "    SelectLatestSketch = False",
    "    For i = 0 To swModel.GetFeatureCount - 1",
    "        Set swFeat = swModel.FeatureByPositionReverse(i)",
    "        If Not swFeat Is Nothing Then",
    "            If InStr(1, swFeat.GetTypeName2, \"ProfileFeature\", vbTextCompare) > 0 Then",
    "                swFeat.Select2 False, 0",
    "                SelectLatestSketch = True",
    "                Exit Function",
    "            End If",
    "        End If",
    "    Next i",
    "End Function",
]


def render_call(target: str, method: str, slots: Sequence[Slot], assign: str = "Set swFeature = ") -> List[str]:
    """Render a multi-line positional call, one slot per line, in slot order."""
    check_identifier(method)
    if not slots:
        return [f"{INDENT}{assign}{target}.{method}()"]
    lines = [f"{INDENT}' Slots: {', '.join(name for name, _ in slots)}"]
    lines.append(f"{INDENT}{assign}{target}.{method}( _")
    for i, (_, value) in enumerate(slots):
        suffix = ", _" if i < len(slots) - 1 else ")"
        lines.append(f"{INDENT * 2}{vba_literal(value)}{suffix}")
    return lines


def _select_by_name(name: str, kind: str, append: bool, mark: int) -> str:
    return (
        f"{INDENT}boolStatus = swModel.Extension.SelectByID2("
        f"{vba_literal(name)}, {vba_literal(kind)}, 0, 0, 0, {vba_literal(append)}, {mark}, Nothing, 0)"
    )


def _require_selection(message: str) -> List[str]:
    return [
        f"{INDENT}If Not boolStatus Then",
        f"{INDENT * 2}Err.Raise vbObjectError + 515, , {vba_literal(message)}",
        f"{INDENT}End If",
    ]


def _select_active_sketch() -> List[str]:
    return [
        "    swModel.SketchManager.InsertSketch True",
        "    swModel.ClearSelection2 True",
        "    boolStatus = SelectLatestSketch(swModel)",
    ] + _require_selection("No sketch available")


def _audit(slots: Sequence[Slot]) -> Dict[str, Any]:
    return {name: value for name, value in slots}


def extrusion_slots(params: ExtrudeParameters) -> List[Slot]:
    """FeatureExtrusion3 positional slots, in native units."""
    has_draft = params.draft != 0 or params.draft_while_extruding
    return [
        ("Sd", not params.both_directions),
        ("Flip", params.reverse),
        ("Dir", params.both_directions),
        ("T1", params.end_condition_code),
        ("T2", params.end_condition_code if params.both_directions else 0),
        ("D1", mm_to_m(params.depth)),
        ("D2", mm_to_m(params.second_depth)),
        ("Dchk1", has_draft),
        ("Dchk2", False),
        ("Ddir1", params.draft_outward),
        ("Ddir2", False),
        ("Dang1", deg_to_rad(params.draft)),
        ("Dang2", 0),
        ("OffsetReverse1", params.offset_reverse),
        ("OffsetReverse2", False),
        ("TranslateSurface1", params.translate_surface),
        ("TranslateSurface2", False),
        ("Merge", params.merge),
        ("FlipSideToCut", params.flip_side_to_cut),
        ("Update", True),
        ("T0", 0),
        ("StartOffset", 0),
        ("FlipStartOffset", False),
    ]


def thin_wall_slots(params: ExtrudeParameters) -> List[Slot]:
    """Thin-wall configuration applied after the extrusion exists."""
    cap_thickness = params.cap_thickness if params.cap_thickness is not None else params.thin_thickness
    return [
        ("ThinType", THIN_WALL_TYPES[params.thin_type]),
        ("Thickness1", mm_to_m(params.thin_thickness)),
        ("Thickness2", 0),
        ("CapEnds", params.cap_ends),
        ("CapThickness", mm_to_m(cap_thickness) if params.cap_ends else 0),
    ]


def generate_extrusion(params: ExtrudeParameters) -> Tuple[str, List[str], Dict[str, Any]]:
    slots = extrusion_slots(params)
    body = list(_OPEN_DOCUMENT)
    body += [""] + _select_active_sketch() + [""]
    body += render_call("swFeatureMgr", "FeatureExtrusion3", slots)
    audit = _audit(slots)

    if params.thin_feature:
        thin = thin_wall_slots(params)
        body += [
            "",
            "    ' Thin wall",
            "    If Not swFeature Is Nothing Then",
            "        swFeature.SetThinWallType " + ", ".join(vba_literal(v) for _, v in thin),
            "    End If",
        ]
        audit.update(_audit(thin))

    return "CreateExtrusion", body + _FINISH + _SELECT_LATEST_SKETCH, audit


def revolve_slots(params: RevolveParameters) -> List[Slot]:
    """FeatureRevolve2 positional slots, in native units."""
    direction = params.direction_code
    both = direction == 2
    second_angle = params.angle2 if params.angle2 is not None else params.angle
    return [
        ("BothDirections", both),
        ("Reverse", direction == 1),
        ("Angle", deg_to_rad(params.angle)),
        ("Angle2", deg_to_rad(second_angle) if both else 0),
        ("ThinFeature", params.thin_feature),
        ("ThinThickness", mm_to_m(params.thin_thickness) if params.thin_feature else 0),
        ("Merge", params.merge),
        ("UseDiameter", True),
        ("RevType", 0),
        ("RevType2", 0),
    ]


def generate_revolve(params: RevolveParameters) -> Tuple[str, List[str], Dict[str, Any]]:
    slots = revolve_slots(params)
    body = list(_OPEN_DOCUMENT)
    body += [""] + _select_active_sketch()
    if params.axis:
        body += ["", "    ' Axis"]
        body.append(_select_by_name(params.axis, "AXIS", True, 16))
        body += _require_selection(f"Axis not found: {params.axis}")
    body.append("")
    body += render_call("swFeatureMgr", "FeatureRevolve2", slots)
    audit = _audit(slots)
    audit["Axis"] = params.axis
    return "CreateRevolve", body + _FINISH + _SELECT_LATEST_SKETCH, audit


def sweep_slots(params: SweepParameters) -> List[Slot]:
    """InsertProtrusionSwept4 positional slots, in native units."""
    return [
        ("PropagateFeatureToParts", False),
        ("AlignWithEndFaces", False),
        ("TwistCtrlOption", 1 if params.twist_angle else 0),
        ("TwistAngle", deg_to_rad(params.twist_angle)),
        ("ReverseTwist", False),
        ("TangencyType", 0),
        ("PathAlign", 0),
        ("Merge", params.merge),
        ("ThinFeature", params.thin_feature),
        ("ThinThickness", mm_to_m(params.thin_thickness) if params.thin_feature else 0),
        ("ThinType", 0),
        ("MergeScope", True),
        ("UseFeatScope", False),
        ("AutoSelect", True),
    ]


def generate_sweep(params: SweepParameters) -> Tuple[str, List[str], Dict[str, Any]]:
    slots = sweep_slots(params)
    body = list(_OPEN_DOCUMENT)
    body += ["", "    swModel.ClearSelection2 True", "", "    ' Profile"]
    body.append(_select_by_name(params.profile_sketch, "SKETCH", False, 1))
    body += _require_selection(f"Profile sketch not found: {params.profile_sketch}")
    body += ["", "    ' Path"]
    body.append(_select_by_name(params.path_sketch, "SKETCH", True, 4))
    body += _require_selection(f"Path sketch not found: {params.path_sketch}")
    body.append("")
    body += render_call("swFeatureMgr", "InsertProtrusionSwept4", slots)
    audit = _audit(slots)
    audit.update({"ProfileSketch": params.profile_sketch, "PathSketch": params.path_sketch})
    return "CreateSweep", body + _FINISH, audit


def loft_slots(params: LoftParameters) -> List[Slot]:
    """InsertProtrusionLoft3 positional slots, in native units."""
    return [
        ("Closed", params.close),
        ("KeepTangency", False),
        ("ForceNonRational", False),
        ("SimpleSurfaces", False),
        ("CloseGuideCurves", False),
        ("StartTangencyType", 0),
        ("EndTangencyType", 0),
        ("StartTangentLength", 0),
        ("EndTangentLength", 0),
        ("ThinFeature", params.thin_feature),
        ("ThinThickness1", mm_to_m(params.thin_thickness) if params.thin_feature else 0),
        ("ThinThickness2", 0),
        ("ThinType", 0),
        ("Merge", params.merge),
        ("UseFeatScope", True),
        ("AutoSelect", True),
    ]


def generate_loft(params: LoftParameters) -> Tuple[str, List[str], Dict[str, Any]]:
    slots = loft_slots(params)
    body = list(_OPEN_DOCUMENT)
    body += ["", "    swModel.ClearSelection2 True", "", "    ' Profiles"]
    for index, profile in enumerate(params.profiles):
        body.append(_select_by_name(profile, "SKETCH", index > 0, 1))
        body += _require_selection(f"Profile sketch not found: {profile}")
    if params.guide_curves:
        body += ["", "    ' Guide curves"]
        for guide in params.guide_curves:
            body.append(_select_by_name(guide, "SKETCH", True, 2))
            body += _require_selection(f"Guide curve not found: {guide}")
    body.append("")
    body += render_call("swFeatureMgr", "InsertProtrusionLoft3", slots)
    audit = _audit(slots)
    audit.update({"Profiles": list(params.profiles), "GuideCurves": list(params.guide_curves)})
    return "CreateLoft", body + _FINISH, audit


TEMPLATES: Dict[str, Callable[[Any], Tuple[str, List[str], Dict[str, Any]]]] = {
    "extrude": generate_extrusion,
    "revolve": generate_revolve,
    "sweep": generate_sweep,
    "loft": generate_loft,
}


class ScriptGenerator:
    """
    Turns structured parameters into script text.

    Never executes anything. The script id is random but the text is not,
    so the id never appears in the text.
    """

    def __init__(self, module: str = "Module1", id_factory: Optional[Callable[[], str]] = None):
        self.module = module
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)

    def has_template(self, family: str) -> bool:
        return family in TEMPLATES

    def generate(
        self,
        family: str,
        parameters: Union[OperationParameters, Mapping[str, Any]]
    ) -> GeneratedScript:
        """
        Generate the script for a dedicated-template family.

        Args:
            family: Operation family ("extrude", "revolve", "sweep", "loft")
            parameters: Validated parameter model or raw parameter mapping

        Returns:
            GeneratedScript with text and substituted native values

        Raises:
            ParameterValidationError: If raw parameters fail validation
            ScriptGenerationError: If the family has no template or rendering fails
        """
        template = TEMPLATES.get(family)
        if template is None:
            raise ScriptGenerationError(f"No script template for operation family: {family}")

        if not isinstance(parameters, OperationParameters):
            parameters = validate_parameters(family, parameters)

        try:
            procedure, body, audit = template(parameters)
        except (ScriptGenerationError, ParameterValidationError):
            raise
        except Exception as e:
            raise ScriptGenerationError(f"Template for {family} failed: {e}", cause=e) from e

        return self._assemble(family, procedure, body, audit)

    def generate_generic(
        self,
        method: str,
        args: Sequence[Any],
        family: str = "call"
    ) -> GeneratedScript:
        """
        Generate a script invoking an arbitrary known method on the active document.

        Args:
            method: Member name, optionally dotted (e.g. "SketchManager.CreateLine")
            args: Positional arguments, already in native units
            family: Family recorded on the script for audit and file naming

        Raises:
            ScriptGenerationError: For invalid method names or unrenderable arguments
        """
        check_identifier(method)
        procedure = "Execute" + method.replace(".", "_")
        slots = [(f"Arg{i + 1}", value) for i, value in enumerate(args)]
        body = [
            "    Dim swApp As Object",
            "    Dim swModel As Object",
            "",
            "    Set swApp = Application.SldWorks",
            "    Set swModel = swApp.ActiveDoc",
            "    If swModel Is Nothing Then",
            "        Err.Raise vbObjectError + 513, , \"No active document\"",
            "    End If",
            "",
        ]
        body += render_call("swModel", method, slots, assign="Call ")
        body += [
            "",
            "    swModel.EditRebuild3",
            "End Sub",
        ]
        return self._assemble(family, procedure, body, _audit(slots))

    def _assemble(self, family: str, procedure: str, body: List[str], audit: Dict[str, Any]) -> GeneratedScript:
        lines = _PREAMBLE + [f"Sub {procedure}()"] + body
        text = "\n".join(lines) + "\n"
        return GeneratedScript(
            script_id=self._new_id(),
            family=family,
            module=self.module,
            procedure=procedure,
            text=text,
            parameters=audit,
        )
