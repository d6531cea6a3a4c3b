"""Tests for XMP sidecar import."""

import pytest

from photoedit.model.edit_state import CurvePoint, EditState
from photoedit.processing.xmp_import import load_xmp, parse_xmp, preset_name
from photoedit.utils.errors import FileIOError

SAMPLE_XMP = """<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:crs="http://ns.adobe.com/camera-raw-settings/1.0/"
   crs:Exposure2012="+0.50"
   crs:Contrast2012="-20"
   crs:Shadows2012="35"
   crs:Vibrance="15"
   crs:Saturation="-10"
   crs:Temperature="6600"
   crs:PostCropVignetteAmount="-25"
   crs:GrainAmount="30"
   crs:HueAdjustmentRed="10"
   crs:SaturationAdjustmentBlue="-40"
   crs:SplitToningShadowHue="220"
   crs:SplitToningShadowSaturation="25"
   crs:SplitToningBalance="-10"
   crs:ColorGradeMidtoneHue="40"
   crs:ColorGradeMidtoneSat="12"
   crs:RedSaturation="8">
   <crs:ToneCurvePV2012>
    <rdf:Seq>
     <rdf:li>0, 0</rdf:li>
     <rdf:li>64, 50</rdf:li>
     <rdf:li>255, 255</rdf:li>
    </rdf:Seq>
   </crs:ToneCurvePV2012>
   <crs:ToneCurvePV2012Red>
    <rdf:Seq>
     <rdf:li>0, 0</rdf:li>
     <rdf:li>255, 255</rdf:li>
    </rdf:Seq>
   </crs:ToneCurvePV2012Red>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
"""


class TestParseXMP:
    """Mapping of crs develop settings."""

    @pytest.fixture
    def parsed(self):
        return parse_xmp(SAMPLE_XMP)

    def test_percent_sliders(self, parsed):
        assert parsed["exposure"] == pytest.approx(0.005)
        assert parsed["contrast"] == pytest.approx(-0.2)
        assert parsed["shadows"] == pytest.approx(0.35)
        assert parsed["vibrance"] == pytest.approx(0.15)
        assert parsed["saturation"] == pytest.approx(-0.1)
        assert parsed["grain"] == pytest.approx(0.3)

    def test_only_present_keys(self, parsed):
        assert "highlights" not in parsed
        assert "dehaze" not in parsed
        assert "filters" not in parsed

    def test_temperature(self, parsed):
        assert parsed["temperature"] == pytest.approx(0.2)

    def test_vignette_magnitude(self, parsed):
        assert parsed["vignette"] == pytest.approx(0.25)

    def test_hsl(self, parsed):
        assert parsed["colorHSL"]["red"] == {"hue": 10.0, "saturation": 0.0, "luminance": 0.0}
        assert parsed["colorHSL"]["blue"]["saturation"] == -40.0
        assert "green" not in parsed["colorHSL"]

    def test_split_toning(self, parsed):
        assert parsed["splitToning"] == {"shadowHue": 220.0, "shadowSaturation": 25.0, "balance": -10.0}

    def test_color_grading_blending_default(self, parsed):
        assert parsed["colorGrading"]["midtoneHue"] == 40.0
        assert parsed["colorGrading"]["blending"] == 100.0

    def test_calibration(self, parsed):
        assert parsed["colorCalibration"] == {"redSaturation": 8.0}

    def test_curves(self, parsed):
        assert parsed["curves"]["rgb"] == [
            {"x": 0.0, "y": 0.0}, {"x": 64.0, "y": 50.0}, {"x": 255.0, "y": 255.0},
        ]
        assert len(parsed["curves"]["red"]) == 2

    def test_identity_curves_skipped(self):
        text = (
            "<crs:ToneCurvePV2012><rdf:Seq><rdf:li>0, 0</rdf:li>"
            "<rdf:li>255, 255</rdf:li></rdf:Seq></crs:ToneCurvePV2012>"
        )
        assert "curves" not in parse_xmp(text)

    def test_monochrome(self):
        parsed = parse_xmp('crs:Name="Adobe Monochrome" crs:Contrast2012="10"')
        assert parsed["filters"] == ["grayscale"]
        assert parsed["saturation"] == -1.0

    def test_non_numeric_ignored(self):
        assert parse_xmp('crs:Exposure2012="bright" crs:Clarity2012="20"') == {"clarity": 0.2}

    def test_empty(self):
        assert parse_xmp("") == {}


class TestLoadXMP:
    """Files become clamped EditState values."""

    def test_load(self, tmp_path):
        path = tmp_path / "Warm Look.xmp"
        path.write_text(SAMPLE_XMP, encoding="utf-8")

        edit = load_xmp(str(path))
        assert isinstance(edit, EditState)
        assert edit.contrast == pytest.approx(-0.2)
        assert edit.color_hsl.red.hue == 10.0
        assert edit.split_toning.shadow_hue == 220.0
        assert edit.curves.rgb[1] == CurvePoint(64, 50)
        assert edit.curves.is_modified()

    def test_out_of_range_clamped(self, tmp_path):
        path = tmp_path / "hot.xmp"
        path.write_text('crs:Temperature="50000" crs:Exposure2012="400"', encoding="utf-8")
        edit = load_xmp(str(path))
        assert edit.temperature == 1.0
        assert edit.exposure == 1.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileIOError):
            load_xmp(str(tmp_path / "missing.xmp"))

    def test_preset_name(self):
        assert preset_name("/presets/Warm Look.xmp") == "Warm Look"
        assert preset_name("Matte.XMP") == "Matte"
        assert preset_name("notes.txt") == "notes.txt"
