import re
import math
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from feasibility_app.api.validation import (
    map_errors_to_fields,
    collect_input_warnings,
    collect_result_warnings,
)
from feasibility_app.models.schemas import (
    FeasibilityInputs,
    NPVRequest,
    IRRRequest,
    ExportRequest,
)
from feasibility_app.services.feasibility_model import (
    DEFAULT_INPUTS,
    ANALYSIS_YEARS,
    FeasibilityValidationError,
    ArithmeticPreconditionError,
    validate_inputs,
    calculate_feasibility,
    calculate_npv,
    calculate_irr,
    generate_scenario_analysis,
    build_cash_flow_projection,
)
from feasibility_app.services.export_service import (
    export_feasibility_pdf,
    export_feasibility_excel,
    summarize_in_crores,
)

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Utility / Helper Functions
# ---------------------------------------------------------------------------


def json_safe(obj: Any) -> Any:
    """Replace non-finite floats (an unbounded payback period) with None."""
    if isinstance(obj, dict):
        return {k: json_safe(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [json_safe(item) for item in obj]
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


def validation_failure(exc: FeasibilityValidationError) -> HTTPException:
    logger.info("Rejected feasibility inputs: %s", ", ".join(exc.errors))
    return HTTPException(
        status_code=422,
        detail={
            "message": str(exc),
            "errors": exc.errors,
            "field_errors": map_errors_to_fields(exc.errors),
        },
    )


def run_analysis(inputs: FeasibilityInputs) -> dict:
    results = calculate_feasibility(inputs)
    scenarios = generate_scenario_analysis(inputs)
    projection = build_cash_flow_projection(results, inputs.discount_rate, ANALYSIS_YEARS)
    return {
        "results": results,
        "scenarios": scenarios,
        "projection": projection,
        "warnings": collect_input_warnings(inputs) + collect_result_warnings(results),
    }


def download_response(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(content)),
        },
    )


# ---------------------------------------------------------------------------
# Health / Defaults
# ---------------------------------------------------------------------------


@api_router.get("/health")
async def health():
    return {"status": "ok"}


@api_router.get("/feasibility/defaults")
async def get_default_inputs():
    return dict(DEFAULT_INPUTS)


# ---------------------------------------------------------------------------
# Feasibility calculations
# ---------------------------------------------------------------------------


@api_router.post("/feasibility/validate")
async def validate_feasibility_inputs(body: FeasibilityInputs):
    errors = validate_inputs(body)
    return {
        "valid": not errors,
        "errors": errors,
        "field_errors": map_errors_to_fields(errors),
        "warnings": collect_input_warnings(body) if not errors else [],
    }


@api_router.post("/feasibility/calculate")
async def calculate(body: FeasibilityInputs):
    try:
        results = calculate_feasibility(body)
        warnings = collect_input_warnings(body) + collect_result_warnings(results)
        return json_safe({**results, "warnings": warnings})
    except FeasibilityValidationError as e:
        raise validation_failure(e)
    except Exception as e:
        logger.error("Error calculating feasibility: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to calculate feasibility")


@api_router.post("/feasibility/scenarios")
async def scenarios(body: FeasibilityInputs):
    try:
        return json_safe(generate_scenario_analysis(body))
    except FeasibilityValidationError as e:
        raise validation_failure(e)
    except Exception as e:
        logger.error("Error generating scenario analysis: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to generate scenario analysis")


@api_router.post("/feasibility/analysis")
async def analysis(body: FeasibilityInputs):
    try:
        analysis = run_analysis(body)
        analysis["summary"] = summarize_in_crores(analysis["results"])
        return json_safe(analysis)
    except FeasibilityValidationError as e:
        raise validation_failure(e)
    except Exception as e:
        logger.error("Error running feasibility analysis: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to run feasibility analysis")


@api_router.post("/feasibility/npv")
async def npv(body: NPVRequest):
    try:
        return {"npv": calculate_npv(body.cash_flow, body.investment, body.discount_rate, body.years)}
    except ArithmeticPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error calculating NPV: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to calculate NPV")


@api_router.post("/feasibility/irr")
async def irr(body: IRRRequest):
    try:
        return {"irr": calculate_irr(body.cash_flow, body.investment, body.years)}
    except ArithmeticPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error calculating IRR: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to calculate IRR")


# ---------------------------------------------------------------------------
# Report export
# ---------------------------------------------------------------------------


@api_router.post("/feasibility/export-pdf")
async def export_pdf(body: ExportRequest):
    try:
        analysis = run_analysis(body.inputs)
        pdf_bytes = export_feasibility_pdf(
            body.inputs,
            analysis["results"],
            analysis["scenarios"],
            analysis["projection"],
            project_name=body.project_name,
        )
        safe_name = re.sub(r"[^a-zA-Z0-9_-]", "_", body.project_name or "project")
        return download_response(pdf_bytes, "application/pdf", f"Feasibility-{safe_name}.pdf")
    except FeasibilityValidationError as e:
        raise validation_failure(e)
    except Exception as e:
        logger.error("Error exporting feasibility PDF: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to export PDF")


@api_router.post("/feasibility/export-excel")
async def export_excel(body: ExportRequest):
    try:
        analysis = run_analysis(body.inputs)
        xlsx_bytes = export_feasibility_excel(
            body.inputs,
            analysis["results"],
            analysis["scenarios"],
            analysis["projection"],
            project_name=body.project_name,
        )
        safe_name = re.sub(r"[^a-zA-Z0-9_-]", "_", body.project_name or "project")
        return download_response(
            xlsx_bytes,
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            f"Feasibility-{safe_name}.xlsx",
        )
    except FeasibilityValidationError as e:
        raise validation_failure(e)
    except Exception as e:
        logger.error("Error exporting feasibility Excel: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to export Excel")
