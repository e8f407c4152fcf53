import math
from typing import Any

from feasibility_app.models.schemas import FeasibilityInputs

# Message prefix -> input field, in the order validate_inputs checks them
FIELD_MESSAGE_PREFIXES = [
    ("cattle_count", "cattle count"),
    ("avg_dung_per_cattle", "average dung per cattle"),
    ("methane_potential", "methane potential"),
    ("plant_efficiency", "plant efficiency"),
    ("selling_price", "selling price"),
    ("carbon_credit_price", "carbon credit price"),
    ("construction_cost", "construction cost"),
    ("operating_cost_ratio", "operating cost ratio"),
    ("subsidy_percentage", "subsidy percentage"),
    ("discount_rate", "discount rate"),
]


def field_for_message(message: str) -> str | None:
    text = message.lower()
    for field, prefix in FIELD_MESSAGE_PREFIXES:
        if text.startswith(prefix):
            return field
    return None


def map_errors_to_fields(errors: list[str]) -> dict[str, str]:
    field_errors: dict[str, str] = {}
    for message in errors:
        field = field_for_message(message)
        if field and field not in field_errors:
            field_errors[field] = message
    return field_errors


def collect_input_warnings(inputs: FeasibilityInputs) -> list[dict[str, Any]]:
    warnings: list[dict[str, Any]] = []

    if inputs.methane_potential > 1:
        warnings.append({
            "field": "methane_potential",
            "message": "Methane potential above 1 m³ biogas per kg dung is unusually high — check the yield coefficient",
            "severity": "warning",
        })

    if inputs.subsidy_percentage == 100:
        warnings.append({
            "field": "subsidy_percentage",
            "message": "Fully subsidised project — NPV is undiscounted cash flow and IRR is a fixed sentinel value",
            "severity": "warning",
        })

    if inputs.operating_cost_ratio == 1:
        warnings.append({
            "field": "operating_cost_ratio",
            "message": "Operating costs consume all revenue — net cash flow is zero",
            "severity": "warning",
        })

    return warnings


def collect_result_warnings(results: dict) -> list[dict[str, Any]]:
    warnings: list[dict[str, Any]] = []
    metrics = results["metrics"]

    if math.isinf(metrics["payback_period"]):
        warnings.append({
            "field": "payback_period",
            "message": "Net cash flow never recovers the net investment — payback period is unbounded",
            "severity": "warning",
        })

    if metrics["npv"] <= 0:
        warnings.append({
            "field": "npv",
            "message": f"Project is not profitable over the analysis horizon (NPV {metrics['npv']:,.0f})",
            "severity": "warning",
        })

    return warnings
