"""Benchmark catalog — default emission intensities by goods category and route.

Values are tCO2e per tonne of product (Annex I, C(2025) 8151). CN codes
resolve to a goods category by the most specific prefix available:
8 digits, then 6, then 4.
"""

from dataclasses import dataclass

BENCHMARKS: dict[str, dict[str, float]] = {
    "iron_ore_pellets": {"blast_furnace": 0.058, "direct_reduction": 0.045},
    "sinter": {"standard": 0.172},
    "pig_iron": {"blast_furnace": 1.330},
    "direct_reduced_iron": {"coal_based": 1.480, "gas_based": 0.580},
    "crude_steel": {"basic_oxygen_furnace": 1.530, "electric_arc_furnace": 0.283},
    "hot_rolled_coil": {"bf_bof_route": 1.370, "dri_eaf_route": 0.481, "scrap_eaf_route": 0.072},
    "cold_rolled_coil": {"bf_bof_route": 1.420, "scrap_eaf_route": 0.120},
    "primary_aluminium": {"electrolysis": 8.500},
    "secondary_aluminium": {"scrap_remelting": 0.450},
    "aluminium_extrusions": {"primary_route": 8.650, "secondary_route": 0.580},
    "aluminium_sheets": {"primary_route": 8.720, "secondary_route": 0.620},
    "clinker": {"dry_process": 0.766, "wet_process": 0.885},
    "portland_cement": {"cem_i": 0.703, "cem_ii": 0.582, "cem_iii": 0.469},
    "ammonia": {"steam_reforming": 2.050, "coal_gasification": 2.950},
    "nitric_acid": {"single_pressure": 0.320, "dual_pressure": 0.290},
    "urea": {"standard": 1.120},
    "ammonium_nitrate": {"standard": 1.580},
    "npk_fertilizers": {"compound": 1.350},
    "hydrogen": {
        "grey_smr": 10.500,
        "blue_smr_ccs": 2.100,
        "green_electrolysis": 0.000,
        "coal_gasification": 19.300,
    },
    "electricity": {"coal": 0.850, "gas_ccgt": 0.380, "renewable": 0.020, "nuclear": 0.010},
}

CN_MAPPINGS: dict[str, str] = {
    "260111": "iron_ore_pellets", "260112": "iron_ore_pellets", "2601": "sinter",
    "7201": "pig_iron", "72011000": "pig_iron", "72012000": "pig_iron",
    "7203": "direct_reduced_iron", "72031000": "direct_reduced_iron",
    "7206": "crude_steel", "7207": "crude_steel", "72061000": "crude_steel",
    "72071100": "crude_steel",
    "7208": "hot_rolled_coil", "7209": "hot_rolled_coil", "7210": "hot_rolled_coil",
    "72081000": "hot_rolled_coil", "72082500": "hot_rolled_coil", "72083900": "hot_rolled_coil",
    "7211": "cold_rolled_coil", "7212": "cold_rolled_coil",
    "72111300": "cold_rolled_coil", "72111400": "cold_rolled_coil",
    "7213": "hot_rolled_coil", "7214": "hot_rolled_coil", "7215": "cold_rolled_coil",
    "7601": "primary_aluminium", "760110": "primary_aluminium", "760120": "secondary_aluminium",
    "76011000": "primary_aluminium", "76012000": "secondary_aluminium",
    "7602": "secondary_aluminium", "7604": "aluminium_extrusions", "7605": "aluminium_extrusions",
    "7606": "aluminium_sheets", "7607": "aluminium_sheets",
    "2523": "portland_cement", "252310": "clinker", "25231000": "clinker",
    "252321": "portland_cement", "252329": "portland_cement", "25232100": "portland_cement",
    "2808": "nitric_acid", "280800": "nitric_acid", "280810": "nitric_acid",
    "2809": "ammonia", "280920": "ammonia", "28092000": "ammonia",
    "310210": "urea", "31021000": "urea",
    "310221": "ammonium_nitrate", "310230": "ammonium_nitrate", "31022100": "ammonium_nitrate",
    "3105": "npk_fertilizers", "310510": "npk_fertilizers", "31051000": "npk_fertilizers",
    "2804": "hydrogen", "280410": "hydrogen", "28041000": "hydrogen",
    "2716": "electricity", "27160000": "electricity",
}

# Origins assumed to run blast-furnace routes absent other evidence.
HIGH_CARBON_ORIGINS = frozenset({"China", "India", "Russia", "Ukraine"})

ANNEX_II_CATEGORIES = frozenset({"electricity", "clinker", "portland_cement", "nitric_acid"})


@dataclass(frozen=True)
class BenchmarkLookup:
    """Resolved benchmark for one CN code."""

    goods_category: str
    production_route: str
    value_per_tonne: float

    @property
    def is_annex_ii(self) -> bool:
        return self.goods_category in ANNEX_II_CATEGORIES


def find_category(cn_code: str) -> str | None:
    """Goods category for a CN code, by longest matching prefix."""
    code = (cn_code or "").strip()
    for length in (8, 6, 4):
        category = CN_MAPPINGS.get(code[:length]) if len(code) >= length else None
        if category is not None:
            return category
    return None


def auto_detect_route(category: str | None, country: str, product_name: str = "") -> str | None:
    """Best-guess production route from category, origin and product description."""
    if category is None or category not in BENCHMARKS:
        return None

    description = (product_name or "").lower()
    high_carbon = country in HIGH_CARBON_ORIGINS
    routes = BENCHMARKS[category]

    if category == "crude_steel":
        if "scrap" in description or "eaf" in description:
            return "electric_arc_furnace"
        if "bof" in description or "blast" in description:
            return "basic_oxygen_furnace"
        return "basic_oxygen_furnace" if high_carbon else "electric_arc_furnace"

    if category in ("hot_rolled_coil", "cold_rolled_coil"):
        if "scrap" in description:
            return "scrap_eaf_route"
        if "dri" in description and "dri_eaf_route" in routes:
            return "dri_eaf_route"
        return "bf_bof_route" if high_carbon else "scrap_eaf_route"

    if "aluminium" in category:
        if "scrap" in description or "secondary" in description:
            return "secondary_route" if "secondary_route" in routes else next(iter(routes))
        return "primary_route" if "primary_route" in routes else next(iter(routes))

    if category == "clinker":
        return "wet_process" if "wet" in description else "dry_process"

    if category == "portland_cement":
        if "cem iii" in description:
            return "cem_iii"
        if "cem ii" in description:
            return "cem_ii"
        return "cem_i"

    if category == "hydrogen":
        if "green" in description or "renewable" in description:
            return "green_electrolysis"
        if "blue" in description or "ccs" in description:
            return "blue_smr_ccs"
        if "coal" in description:
            return "coal_gasification"
        return "grey_smr"

    return next(iter(routes))


def lookup_benchmark(
    cn_code: str,
    *,
    country: str = "",
    product_name: str = "",
    production_route: str | None = None,
) -> BenchmarkLookup | None:
    """Resolve category, route and benchmark value, or None for unmapped codes."""
    category = find_category(cn_code)
    if category is None:
        return None
    routes = BENCHMARKS[category]
    route = production_route or auto_detect_route(category, country, product_name)
    if route not in routes:
        route = next(iter(routes))
    return BenchmarkLookup(
        goods_category=category,
        production_route=route,
        value_per_tonne=routes[route],
    )
