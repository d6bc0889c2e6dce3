"""Catalogue of SLS powder materials and their process windows."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, Optional


class MaterialFamily(str, Enum):
    """Powder families; changeovers inside a family are cheaper."""

    TITANIUM = "Titanium"
    NICKEL = "Nickel"
    STEEL = "Steel"
    ALUMINUM = "Aluminum"


class SlsMaterial(str, Enum):
    """Materials the shop prints with."""

    TI64_GRADE_5 = "Ti-6Al-4V Grade 5"
    TI64_ELI_GRADE_23 = "Ti-6Al-4V ELI Grade 23"
    INCONEL_718 = "Inconel 718"
    INCONEL_625 = "Inconel 625"
    STAINLESS_316L = "Stainless Steel 316L"
    ALSI10MG = "AlSi10Mg"

    @property
    def profile(self) -> "MaterialProfile":
        return MATERIAL_PROFILES[self]

    @property
    def family(self) -> MaterialFamily:
        return MATERIAL_PROFILES[self].family


@dataclass(frozen=True, slots=True)
class ParameterWindow:
    """Inclusive acceptable range for a process parameter."""

    minimum: float
    maximum: float

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum

    def describe(self) -> str:
        return f"{self.minimum:g}-{self.maximum:g}"


@dataclass(frozen=True, slots=True)
class MaterialProfile:
    """Physical data and recommended process windows for one material."""

    code: str
    family: MaterialFamily
    density_g_cm3: float
    cost_per_kg: Decimal
    default_layer_thickness_microns: float
    default_scan_speed_mm_per_sec: float
    laser_power_watts: ParameterWindow
    scan_speed_mm_per_sec: ParameterWindow
    layer_thickness_microns: ParameterWindow
    build_temperature_celsius: ParameterWindow


MATERIAL_PROFILES: Mapping[SlsMaterial, MaterialProfile] = {
    SlsMaterial.TI64_GRADE_5: MaterialProfile(
        code="TI64-G5",
        family=MaterialFamily.TITANIUM,
        density_g_cm3=4.43,
        cost_per_kg=Decimal("450.00"),
        default_layer_thickness_microns=30,
        default_scan_speed_mm_per_sec=1200,
        laser_power_watts=ParameterWindow(150, 300),
        scan_speed_mm_per_sec=ParameterWindow(800, 1600),
        layer_thickness_microns=ParameterWindow(20, 60),
        build_temperature_celsius=ParameterWindow(150, 200),
    ),
    SlsMaterial.TI64_ELI_GRADE_23: MaterialProfile(
        code="TI64-G23",
        family=MaterialFamily.TITANIUM,
        density_g_cm3=4.43,
        cost_per_kg=Decimal("650.00"),
        default_layer_thickness_microns=25,
        default_scan_speed_mm_per_sec=1100,
        laser_power_watts=ParameterWindow(150, 280),
        scan_speed_mm_per_sec=ParameterWindow(800, 1400),
        layer_thickness_microns=ParameterWindow(20, 50),
        build_temperature_celsius=ParameterWindow(150, 200),
    ),
    SlsMaterial.INCONEL_718: MaterialProfile(
        code="IN718",
        family=MaterialFamily.NICKEL,
        density_g_cm3=8.19,
        cost_per_kg=Decimal("750.00"),
        default_layer_thickness_microns=40,
        default_scan_speed_mm_per_sec=1000,
        laser_power_watts=ParameterWindow(200, 350),
        scan_speed_mm_per_sec=ParameterWindow(700, 1300),
        layer_thickness_microns=ParameterWindow(30, 60),
        build_temperature_celsius=ParameterWindow(80, 200),
    ),
    SlsMaterial.INCONEL_625: MaterialProfile(
        code="IN625",
        family=MaterialFamily.NICKEL,
        density_g_cm3=8.44,
        cost_per_kg=Decimal("720.00"),
        default_layer_thickness_microns=40,
        default_scan_speed_mm_per_sec=1000,
        laser_power_watts=ParameterWindow(200, 350),
        scan_speed_mm_per_sec=ParameterWindow(700, 1300),
        layer_thickness_microns=ParameterWindow(30, 60),
        build_temperature_celsius=ParameterWindow(80, 200),
    ),
    SlsMaterial.STAINLESS_316L: MaterialProfile(
        code="SS316L",
        family=MaterialFamily.STEEL,
        density_g_cm3=8.0,
        cost_per_kg=Decimal("150.00"),
        default_layer_thickness_microns=30,
        default_scan_speed_mm_per_sec=1500,
        laser_power_watts=ParameterWindow(150, 300),
        scan_speed_mm_per_sec=ParameterWindow(900, 1800),
        layer_thickness_microns=ParameterWindow(20, 50),
        build_temperature_celsius=ParameterWindow(80, 200),
    ),
    SlsMaterial.ALSI10MG: MaterialProfile(
        code="ALSI10MG",
        family=MaterialFamily.ALUMINUM,
        density_g_cm3=2.67,
        cost_per_kg=Decimal("250.00"),
        default_layer_thickness_microns=30,
        default_scan_speed_mm_per_sec=1800,
        laser_power_watts=ParameterWindow(250, 400),
        scan_speed_mm_per_sec=ParameterWindow(1000, 2200),
        layer_thickness_microns=ParameterWindow(20, 60),
        build_temperature_celsius=ParameterWindow(150, 200),
    ),
}

_BY_KEY: Dict[str, SlsMaterial] = {}
for _material, _profile in MATERIAL_PROFILES.items():
    _BY_KEY[_material.value.lower()] = _material
    _BY_KEY[_profile.code.lower()] = _material


def lookup_material(name: Optional[str]) -> Optional[SlsMaterial]:
    """Resolve a material name or code; ``None`` when it is not catalogued.

    Free-text names that embed a catalogued name (``"Inconel 718 - recycled"``)
    resolve to that material.
    """

    if not name:
        return None
    key = name.strip().lower()
    if key in _BY_KEY:
        return _BY_KEY[key]
    for material in SlsMaterial:
        if material.value.lower() in key:
            return material
    return None


def same_material(first: Optional[str], second: Optional[str]) -> bool:
    """Compare two material names, treating aliases of one material as equal."""

    left = (first or "").strip().lower()
    right = (second or "").strip().lower()
    if left == right:
        return True
    resolved_left = lookup_material(left)
    return resolved_left is not None and resolved_left == lookup_material(right)


__all__ = [
    "MaterialFamily",
    "SlsMaterial",
    "ParameterWindow",
    "MaterialProfile",
    "MATERIAL_PROFILES",
    "lookup_material",
    "same_material",
]
