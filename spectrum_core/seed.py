# spectrum_core/seed.py
"""
Starter data for a new laboratory: sequence prefixes and the petroleum
sample type templates.
"""
from __future__ import annotations

import logging

from django.db import transaction

from spectrum_core.models import FormatID, Laboratory, SampleType
from spectrum_core.numbering import DEFAULT_PREFIXES
from spectrum_core.services.masters import normalize_template

logger = logging.getLogger(__name__)


def _t(parameter, method, unit, spec_min=None, spec_max=None):
    return {
        "parameter": parameter,
        "method": method,
        "unit": unit,
        "specMin": spec_min,
        "specMax": spec_max,
    }


SAMPLE_TYPE_TEMPLATES = {
    "Crude Oil": (
        "Crude petroleum oil samples",
        [
            _t("API Gravity", "ASTM D287", "°API"),
            _t("Kinematic Viscosity @ 40°C", "ASTM D445", "cSt"),
            _t("Sulphur Content", "ASTM D4294", "% m/m"),
            _t("Water Content", "ASTM D4006", "% v/v", None, "0.5"),
            _t("Sediment Content", "ASTM D473", "% m/m", None, "0.10"),
            _t("Salt Content", "ASTM D3230", "PTB"),
            _t("Pour Point", "ASTM D97", "°C"),
            _t("Reid Vapor Pressure", "ASTM D323", "psi"),
        ],
    ),
    "Fuel Oil": (
        "Heavy fuel oil samples",
        [
            _t("Kinematic Viscosity @ 50°C", "ASTM D445", "cSt", None, "380"),
            _t("Density @ 15°C", "ASTM D1298", "kg/m³", None, "991.0"),
            _t("Sulphur Content", "ASTM D4294", "% m/m", None, "3.50"),
            _t("Flash Point", "ASTM D93", "°C", "60"),
            _t("Pour Point", "ASTM D97", "°C", None, "30"),
            _t("Water Content", "ASTM D95", "% v/v", None, "0.5"),
            _t("Ash Content", "ASTM D482", "% m/m", None, "0.10"),
            _t("Vanadium", "IP 501", "mg/kg", None, "150"),
        ],
    ),
    "Diesel": (
        "Diesel fuel samples",
        [
            _t("Kinematic Viscosity @ 40°C", "ASTM D445", "cSt", "2.0", "4.5"),
            _t("Density @ 15°C", "ASTM D1298", "kg/m³", "820", "860"),
            _t("Sulphur Content", "ASTM D4294", "mg/kg", None, "500"),
            _t("Flash Point", "ASTM D93", "°C", "55"),
            _t("Cetane Index", "ASTM D4737", "", "46"),
            _t("Cloud Point", "ASTM D2500", "°C"),
            _t("Water Content", "ASTM D6304", "mg/kg", None, "200"),
            _t("Colour", "ASTM D1500", "", None, "3.0"),
        ],
    ),
    "Lubricant Oil": (
        "Lubricating oil samples",
        [
            _t("Kinematic Viscosity @ 40°C", "ASTM D445", "cSt"),
            _t("Kinematic Viscosity @ 100°C", "ASTM D445", "cSt"),
            _t("Viscosity Index", "ASTM D2270", ""),
            _t("Total Base Number TBN", "ASTM D2896", "mg KOH/g"),
            _t("Total Acid Number TAN", "ASTM D664", "mg KOH/g"),
            _t("Flash Point", "ASTM D92", "°C"),
            _t("Pour Point", "ASTM D97", "°C"),
            _t("Water Content", "ASTM D6304", "ppm", None, "500"),
        ],
    ),
    "Transformer Oil": (
        "Electrical transformer insulating oil samples",
        [
            _t("Breakdown Voltage", "ASTM D1816", "kV", "30"),
            _t("Kinematic Viscosity @ 40°C", "ASTM D445", "cSt", None, "12"),
            _t("Water Content", "ASTM D1533", "ppm", None, "35"),
            _t("Total Acid Number TAN", "ASTM D664", "mg KOH/g", None, "0.3"),
            _t("Interfacial Tension", "ASTM D971", "mN/m", "25"),
            _t("Flash Point", "ASTM D92", "°C", "145"),
            _t("Power Factor @ 25°C", "ASTM D924", "%", None, "0.5"),
            _t("Colour", "ASTM D1500", "", None, "3.0"),
        ],
    ),
}


@transaction.atomic
def seed_laboratory(laboratory: Laboratory, *, sample_types=True) -> dict:
    """
    Idempotent: existing counters and sample types are left untouched.
    """
    counters = 0
    for module, prefix in DEFAULT_PREFIXES.items():
        _, created = FormatID.objects.get_or_create(
            laboratory=laboratory,
            module=module,
            defaults={"prefix": prefix},
        )
        counters += int(created)

    types = 0
    if sample_types:
        for name, (description, tests) in SAMPLE_TYPE_TEMPLATES.items():
            _, created = SampleType.objects.get_or_create(
                laboratory=laboratory,
                name=name,
                defaults={
                    "description": description,
                    "default_tests": normalize_template(tests),
                },
            )
            types += int(created)

    logger.info("Seeded lab %s: %d counter(s), %d sample type(s)", laboratory.code, counters, types)
    return {"format_ids": counters, "sample_types": types}
