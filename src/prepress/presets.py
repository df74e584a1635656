"""
Preset Loading
==============
Builds an EngineConfig from the restoration tool's JSON preset shape:

    {
      "colorCorrection": {"castStrength": 0.5, "whitePoint": 235, ...},
      "matteStock": {"enabled": true, "midtoneLift": 6, ...},
      "cmyk": {"enabled": false, "gcrStrength": 0.8, "tacLimit": 300, ...},
      "referenceMatching": {"enabled": false, "matchStrength": 0.8},
      "qa": {"clippingThreshold": 0.005, "minSSIM": 0.92, ...}
    }

Missing keys fall back to engine defaults; unknown sections are ignored.
The pydantic models only shape the data. Range checks stay in settings.py,
so a bad value still raises ParameterOutOfRange.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .settings import CmykConfig, ColorCorrectionConfig, EngineConfig, MatteConfig, QAConfig


class _PresetSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def overrides(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"enabled"})


class ColorCorrectionPreset(_PresetSection):
    enabled: Optional[bool] = None
    remove_cast: Optional[bool] = Field(None, alias="removeCast")
    cast_strength: Optional[float] = Field(None, alias="castStrength")
    apply_levels: Optional[bool] = Field(None, alias="applyLevels")
    white_point: Optional[float] = Field(None, alias="whitePoint")
    black_point: Optional[float] = Field(None, alias="blackPoint")
    midtone_gamma: Optional[float] = Field(None, alias="midtoneGamma")
    apply_saturation: Optional[bool] = Field(None, alias="applySaturation")
    red_yellow_boost: Optional[float] = Field(None, alias="redYellowBoost")
    blue_green_reduce: Optional[float] = Field(None, alias="blueGreenReduce")
    apply_clarity: Optional[bool] = Field(None, alias="applyClarity")
    clarity_radius: Optional[float] = Field(None, alias="clarityRadius")
    clarity_amount: Optional[float] = Field(None, alias="clarityAmount")
    add_grain: Optional[bool] = Field(None, alias="addGrain")
    grain_strength: Optional[float] = Field(None, alias="grainStrength")
    grain_seed: Optional[int] = Field(None, alias="grainSeed")


class MattePreset(_PresetSection):
    enabled: Optional[bool] = None
    midtone_lift: Optional[float] = Field(None, alias="midtoneLift")
    shadow_compress: Optional[float] = Field(None, alias="shadowCompress")
    saturate_reduce: Optional[float] = Field(None, alias="saturateReduce")


class CmykPreset(_PresetSection):
    enabled: Optional[bool] = None
    gcr_strength: Optional[float] = Field(None, alias="gcrStrength")
    tac_limit: Optional[float] = Field(None, alias="tacLimit")
    rich_black: Optional[bool] = Field(None, alias="applyRichBlack")
    line_art_to_k: Optional[bool] = Field(None, alias="forceLineArtToK")
    compensate_dot_gain: Optional[bool] = Field(None, alias="compensateDotGain")
    dot_gain_amount: Optional[float] = Field(None, alias="dotGainAmount")
    line_art_max_width: Optional[int] = Field(None, alias="lineArtMaxWidth")


class ReferenceMatchingPreset(_PresetSection):
    enabled: Optional[bool] = None
    match_strength: Optional[float] = Field(None, alias="matchStrength")


class QAPreset(_PresetSection):
    enabled: Optional[bool] = None
    check_clipping: Optional[bool] = Field(None, alias="checkHistogram")
    clipping_threshold: Optional[float] = Field(None, alias="clippingThreshold")
    check_ssim: Optional[bool] = Field(None, alias="checkSSIM")
    min_ssim: Optional[float] = Field(None, alias="minSSIM")
    check_edges: Optional[bool] = Field(None, alias="checkEdges")
    max_edge_density: Optional[float] = Field(None, alias="maxEdgeDensity")
    check_tint: Optional[bool] = Field(None, alias="checkTint")
    check_contrast: Optional[bool] = Field(None, alias="checkContrast")
    min_contrast: Optional[float] = Field(None, alias="minContrast")
    check_sharpness: Optional[bool] = Field(None, alias="checkPrintReadiness")
    min_sharpness: Optional[float] = Field(None, alias="minSharpness")


class Preset(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    color_correction: ColorCorrectionPreset = Field(default_factory=ColorCorrectionPreset,
                                                    alias="colorCorrection")
    matte_stock: MattePreset = Field(default_factory=MattePreset, alias="matteStock")
    cmyk: CmykPreset = Field(default_factory=CmykPreset)
    reference_matching: ReferenceMatchingPreset = Field(default_factory=ReferenceMatchingPreset,
                                                        alias="referenceMatching")
    qa: QAPreset = Field(default_factory=QAPreset)

    def to_engine_config(self) -> EngineConfig:
        color = self.color_correction.overrides()
        if self.color_correction.enabled is False:
            color.update(remove_cast=False, apply_levels=False, apply_saturation=False,
                         apply_clarity=False, add_grain=False)
        if self.reference_matching.enabled is not None:
            color["match_reference"] = self.reference_matching.enabled
        color.update(self.reference_matching.overrides())

        matte = self.matte_stock.overrides()
        if self.matte_stock.enabled is not None:
            matte["enabled"] = self.matte_stock.enabled

        cmyk = CmykConfig(**self.cmyk.overrides()) if self.cmyk.enabled else None

        qa = self.qa.overrides()
        if self.qa.enabled is False:
            qa.update(check_clipping=False, check_ssim=False, check_edges=False,
                      check_tint=False, check_contrast=False, check_sharpness=False)

        return EngineConfig(
            color=ColorCorrectionConfig(**color),
            matte=MatteConfig(**matte),
            cmyk=cmyk,
            qa=QAConfig(**qa),
        )


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``source`` over ``target`` into a new dict."""
    merged = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_preset(data: Union[Dict[str, Any], str, Path], base: Optional[Dict[str, Any]] = None) -> EngineConfig:
    """
    Build an EngineConfig from a preset dict or a JSON file path.

    ``base`` is merged underneath, so a batch default can be overridden per
    page with a partial preset.
    """
    if isinstance(data, (str, Path)):
        data = json.loads(Path(data).read_text(encoding="utf-8"))
    if base:
        data = deep_merge(base, data)
    return Preset.model_validate(data).to_engine_config()
