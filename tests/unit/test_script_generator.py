"""Unit tests for script generation, literal rendering and the script store."""

import math
import re

import pytest

from src.models.errors import ParameterValidationError, ScriptGenerationError
from src.models.operations import ExtrudeParameters
from src.scripting.literals import deg_to_rad, format_number, mm_to_m, quote_string, vba_literal
from src.scripting.script_generator import ScriptGenerator, extrusion_slots
from src.scripting.store import ScriptStore


def slot_values(text: str, method: str):
    """Extract the rendered argument lines of a multi-line call."""
    lines = text.splitlines()
    start = next(i for i, line in enumerate(lines) if f".{method}( _" in line)
    values = []
    for line in lines[start + 1:]:
        value = line.strip()
        if value.endswith(", _"):
            values.append(value[:-3])
        else:
            values.append(value[:-1])
            break
    return values


class TestLiterals:

    def test_unit_conversion(self):
        assert mm_to_m(25) == 0.025
        assert deg_to_rad(180) == pytest.approx(math.pi)

    def test_numbers(self):
        assert format_number(mm_to_m(25)) == "0.025"
        assert format_number(0.0) == "0"
        assert format_number(3) == "3"
        assert format_number(1e-20) == "1E-20"
        assert format_number(deg_to_rad(90)) == "1.5707963267949"

    def test_non_finite_number_rejected(self):
        with pytest.raises(ScriptGenerationError):
            format_number(float("nan"))

    def test_strings(self):
        assert quote_string("Sketch1") == '"Sketch1"'
        assert quote_string('say "hi"') == '"say ""hi"""'
        assert quote_string("") == '""'
        assert quote_string("a\nb") == '"a" & vbLf & "b"'
        assert quote_string("a\r\nb\r") == '"a" & vbCrLf & "b" & vbCr'

    def test_other_literals(self):
        assert vba_literal(True) == "True"
        assert vba_literal(False) == "False"
        assert vba_literal(None) == "Nothing"
        assert vba_literal(["a", 1, (2.5, False)]) == 'Array("a", 1, Array(2.5, False))'

    def test_unrenderable_value(self):
        with pytest.raises(ScriptGenerationError):
            vba_literal({"a": 1})


class TestExtrusionScript:

    def test_depth_renders_in_metres(self):
        script = ScriptGenerator().generate("extrude", {"depth": 25})
        values = slot_values(script.text, "FeatureExtrusion3")

        assert len(values) == 23
        assert values[5] == "0.025"
        assert script.parameters["D1"] == 0.025
        assert script.procedure == "CreateExtrusion"
        assert re.search(r"^Sub CreateExtrusion\(\)", script.text, re.MULTILINE)

    def test_slot_order(self):
        params = ExtrudeParameters(depth=10, both_directions=True, depth2=5, draft=10, end_condition="MidPlane")
        names = [name for name, _ in extrusion_slots(params)]

        assert names[:7] == ["Sd", "Flip", "Dir", "T1", "T2", "D1", "D2"]
        assert names[-3:] == ["T0", "StartOffset", "FlipStartOffset"]
        assert len(names) == 23

        values = dict(extrusion_slots(params))
        assert values["T1"] == 6
        assert values["D2"] == 0.005
        assert values["Dchk1"] is True
        assert values["Dang1"] == pytest.approx(math.radians(10))

    def test_deterministic_text(self):
        params = {"depth": 42.5, "draft": 3, "thinFeature": True, "thinThickness": 1.5}
        first = ScriptGenerator().generate("extrude", params)
        second = ScriptGenerator().generate("extrude", params)

        assert first.text == second.text
        assert first.script_id != second.script_id
        assert first.script_id not in first.text

    def test_thin_wall_block_only_when_enabled(self):
        plain = ScriptGenerator().generate("extrude", {"depth": 5})
        thin = ScriptGenerator().generate(
            "extrude", {"depth": 5, "thinFeature": True, "thinThickness": 2, "capEnds": True}
        )

        assert "SetThinWallType" not in plain.text
        assert "SetThinWallType 0, 0.002, 0, True, 0.002" in thin.text
        assert thin.parameters["Thickness1"] == 0.002

    def test_invalid_parameters_rejected(self):
        with pytest.raises(ParameterValidationError):
            ScriptGenerator().generate("extrude", {"depth": -1})


class TestOtherTemplates:

    def test_revolve_axis_block_only_when_given(self):
        generator = ScriptGenerator()
        without_axis = generator.generate("revolve", {"angle": 180})
        with_axis = generator.generate("revolve", {"angle": 180, "axis": "Axis1"})

        assert "AXIS" not in without_axis.text
        assert 'SelectByID2("Axis1", "AXIS"' in with_axis.text
        values = slot_values(with_axis.text, "FeatureRevolve2")
        assert len(values) == 10
        assert values[2] == format_number(math.pi)

    def test_sweep(self):
        script = ScriptGenerator().generate(
            "sweep", {"profileSketch": "Profile", "pathSketch": "Path", "twistAngle": 45}
        )

        assert script.procedure == "CreateSweep"
        assert len(slot_values(script.text, "InsertProtrusionSwept4")) == 14
        assert '"Profile", "SKETCH"' in script.text
        assert '"Path", "SKETCH"' in script.text
        assert script.parameters["TwistAngle"] == pytest.approx(math.pi / 4)

    def test_loft_guides_only_when_given(self):
        generator = ScriptGenerator()
        plain = generator.generate("loft", {"profiles": ["S1", "S2", "S3"]})
        guided = generator.generate("loft", {"profiles": ["S1", "S2"], "guideCurves": ["G1"]})

        assert "Guide curves" not in plain.text
        assert plain.text.count('"SKETCH"') == 3
        assert '"G1", "SKETCH", 0, 0, 0, True, 2' in guided.text
        assert len(slot_values(guided.text, "InsertProtrusionLoft3")) == 16

    def test_quotes_in_names_are_escaped(self):
        script = ScriptGenerator().generate("sweep", {"profileSketch": 'My "Profile"', "pathSketch": "Path"})
        assert '"My ""Profile"""' in script.text

    def test_no_template(self):
        generator = ScriptGenerator()
        assert generator.has_template("sketch_line") is False
        with pytest.raises(ScriptGenerationError):
            generator.generate("sketch_line", {"x1": 0, "y1": 0, "x2": 1, "y2": 1})


class TestGenericScript:

    def test_generic_call(self):
        script = ScriptGenerator(module="Macros").generate_generic(
            "SketchManager.CreateLine", [0, 0, 0, 0.01, 0, 0], family="sketch_line"
        )

        assert script.procedure == "ExecuteSketchManager_CreateLine"
        assert script.module == "Macros"
        assert "    Call swModel.SketchManager.CreateLine( _" in script.text
        assert "result = " not in script.text
        assert slot_values(script.text, "CreateLine") == ["0", "0", "0", "0.01", "0", "0"]
        assert script.parameters["Arg4"] == 0.01

    def test_generic_call_without_arguments(self):
        script = ScriptGenerator().generate_generic("FeatureManager.InsertRib", [])
        assert "    Call swModel.FeatureManager.InsertRib()" in script.text

    def test_rejects_injection_in_method_name(self):
        with pytest.raises(ScriptGenerationError):
            ScriptGenerator().generate_generic('Foo()\nShell "calc"', [])

    def test_wraps_unrenderable_args(self):
        with pytest.raises(ScriptGenerationError):
            ScriptGenerator().generate_generic("DoThing", [object()])


class TestScriptStore:

    def test_materialize_writes_and_removes(self, tmp_path):
        store = ScriptStore(tmp_path, extension="swp")
        script = ScriptGenerator(id_factory=lambda: "abc123").generate("extrude", {"depth": 1})

        with store.materialize(script) as path:
            assert path.name == "extrude_abc123.swp"
            assert path.read_text(encoding="utf-8") == script.text

        assert not path.exists()

    def test_removes_on_error(self, tmp_path):
        store = ScriptStore(tmp_path)
        script = ScriptGenerator().generate("extrude", {"depth": 1})

        with pytest.raises(RuntimeError):
            with store.materialize(script) as path:
                raise RuntimeError("boom")

        assert not path.exists()
        assert list(tmp_path.iterdir()) == []
