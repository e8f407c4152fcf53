import io
import re
import math
import logging
from datetime import datetime

from feasibility_app.models.schemas import FeasibilityInputs
from feasibility_app.services.feasibility_model import to_crores

logger = logging.getLogger(__name__)

INPUT_LABELS = {
    "cattle_count": ("Cattle Count", "head"),
    "avg_dung_per_cattle": ("Average Dung per Cattle", "kg/day"),
    "methane_potential": ("Methane Potential", "m³ biogas/kg dung"),
    "plant_efficiency": ("Plant Efficiency", "fraction"),
    "selling_price": ("Selling Price", "INR/m³"),
    "carbon_credit_price": ("Carbon Credit Price", "INR/tCO2e"),
    "construction_cost": ("Construction Cost", "INR"),
    "operating_cost_ratio": ("Operating Cost Ratio", "fraction of revenue"),
    "subsidy_percentage": ("Subsidy", "%"),
    "discount_rate": ("Discount Rate", "%"),
}


def _sanitize(text) -> str:
    if not text:
        return ""
    s = str(text)
    s = s.replace("\u2018", "'").replace("\u2019", "'")
    s = s.replace("\u201c", '"').replace("\u201d", '"')
    s = s.replace("\u2013", "-").replace("\u2014", "--")
    s = s.replace("\u20b9", "INR ").replace("\u00b3", "3").replace("\u2082", "2")
    s = s.replace("\u00a0", " ")
    return s


def _fmt_num(val, decimals=1) -> str:
    if val is None:
        return "-"
    try:
        v = float(val)
    except (ValueError, TypeError):
        return str(val)
    if math.isinf(v):
        return "Never"
    return f"{v:,.{decimals}f}"


def _fmt_inr(val) -> str:
    try:
        v = float(val)
    except (ValueError, TypeError):
        return str(val)
    return f"INR {v:,.0f}"


def _fmt_crores(val) -> str:
    return f"INR {_fmt_num(val, 2)} Cr"


def _snake_to_title(s: str) -> str:
    return re.sub(r"_", " ", s).strip().title()


def _input_rows(inputs: FeasibilityInputs) -> list[list[str]]:
    rows = []
    for field, value in inputs.model_dump().items():
        label, unit = INPUT_LABELS.get(field, (_snake_to_title(field), ""))
        rows.append([label, _fmt_num(value, 2), unit])
    return rows


def _result_rows(results: dict) -> list[list[str]]:
    production = results["production"]
    revenue = results["revenue"]
    costs = results["costs"]
    investment = results["investment"]
    metrics = results["metrics"]
    return [
        ["Daily Dung", f"{_fmt_num(production['daily_dung'])} kg"],
        ["Daily Biogas", f"{_fmt_num(production['daily_biogas'])} m3"],
        ["Annual Biogas", f"{_fmt_num(production['annual_biogas'], 0)} m3"],
        ["Biogas Revenue", _fmt_inr(revenue["biogas"])],
        ["Carbon Credit Revenue", _fmt_inr(revenue["carbon_credits"])],
        ["Total Revenue", _fmt_inr(revenue["total"])],
        ["Operating Costs", _fmt_inr(costs["operating"])],
        ["Net Cash Flow", _fmt_inr(costs["net_cash_flow"])],
        ["Total Investment", _fmt_inr(investment["total"])],
        ["Subsidy", _fmt_inr(investment["subsidy"])],
        ["Net Investment", _fmt_inr(investment["net"])],
        ["Payback Period", f"{_fmt_num(metrics['payback_period'])} years"],
        ["NPV", _fmt_inr(metrics["npv"])],
        ["IRR", f"{_fmt_num(metrics['irr'])}%"],
        ["Profitability", metrics["profitability"]],
    ]


def _scenario_rows(scenarios: list[dict]) -> list[list[str]]:
    return [[
        s["name"],
        _fmt_crores(s["npv"]),
        f"{_fmt_num(s['irr'])}%",
        f"{_fmt_num(s['payback'])} yrs",
        _fmt_crores(s["revenue"]),
    ] for s in scenarios]


def _wrap_text(text: str, max_width: float, font_name: str, font_size: int) -> list:
    from reportlab.pdfbase.pdfmetrics import stringWidth
    words = text.split()
    lines = []
    current = ""
    for word in words:
        test = f"{current} {word}".strip()
        if stringWidth(test, font_name, font_size) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines if lines else [""]


def _row_height(cells, col_widths, bold, font_size=8, pad=3, min_row_h=16):
    """Height of a table row tall enough for every wrapped cell."""
    fn = "Helvetica-Bold" if bold else "Helvetica"
    max_lines = 1
    for i, cell in enumerate(cells):
        lines = _wrap_text(_sanitize(cell), col_widths[i] - pad * 2, fn, font_size)
        max_lines = max(max_lines, len(lines))
    return max(min_row_h, max_lines * (font_size + 2) + pad * 2)


def _draw_table(c, headers, rows, x, y, col_widths,
                font_size=8, header_bg="#2E7D32", page_height=842):
    from reportlab.lib.colors import HexColor
    pad = 3
    table_w = sum(col_widths)

    def draw_row(cells, bold, bg=None):
        nonlocal y
        rh = _row_height(cells, col_widths, bold, font_size, pad)
        if y - rh < 60:
            c.showPage()
            y = page_height - 50
            if cells is not headers:
                draw_row(headers, True, header_bg)
        if bg:
            c.setFillColor(HexColor(bg))
            c.rect(x, y - rh, table_w, rh, fill=1, stroke=0)
        cx = x
        fn = "Helvetica-Bold" if bold else "Helvetica"
        fc = "#FFFFFF" if bg == header_bg else "#333333"
        for i, cell in enumerate(cells):
            c.setFont(fn, font_size)
            c.setFillColor(HexColor(fc))
            ty = y - pad - font_size
            for line in _wrap_text(_sanitize(cell), col_widths[i] - pad * 2, fn, font_size):
                c.drawString(cx + pad, ty, line)
                ty -= font_size + 2
            cx += col_widths[i]
        c.setStrokeColor(HexColor("#CCCCCC"))
        c.setLineWidth(0.5)
        c.rect(x, y - rh, table_w, rh, fill=0, stroke=1)
        y -= rh

    draw_row(headers, True, header_bg)
    for idx, row in enumerate(rows):
        safe_row = [str(cell) if cell is not None else "-" for cell in row]
        bg = "#F1F8E9" if idx % 2 == 1 else None
        draw_row(safe_row, False, bg)
    return y


def _add_section_header(c, title, y, left_margin, content_width, page_height=842):
    from reportlab.lib.colors import HexColor
    if y < 100:
        c.showPage()
        y = page_height - 50
    c.setFont("Helvetica-Bold", 12)
    c.setFillColor(HexColor("#1B5E20"))
    c.drawString(left_margin, y, title)
    y -= 20
    c.setStrokeColor(HexColor("#CCCCCC"))
    c.setLineWidth(0.5)
    c.line(left_margin, y, left_margin + content_width, y)
    y -= 8
    return y


def export_feasibility_pdf(
    inputs: FeasibilityInputs,
    results: dict,
    scenarios: list[dict],
    projection: list[dict],
    project_name: str | None = None,
) -> bytes:
    from reportlab.lib.pagesizes import A4
    from reportlab.pdfgen import canvas
    from reportlab.lib.colors import HexColor

    page_width, page_height = A4
    left_margin = 50
    content_width = page_width - 100

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)

    c.setFont("Helvetica-Bold", 18)
    c.setFillColor(HexColor("#1B5E20"))
    c.drawCentredString(page_width / 2, page_height - 50, "Biogas Plant Feasibility Report")

    c.setFont("Helvetica", 10)
    c.setFillColor(HexColor("#666666"))
    title_y = page_height - 75
    project_line = f"Project: {_sanitize(project_name or 'Untitled project')}"
    for line in _wrap_text(project_line, content_width, "Helvetica", 10):
        c.drawCentredString(page_width / 2, title_y, line)
        title_y -= 13
    c.drawCentredString(page_width / 2, title_y, f"Generated: {datetime.now().strftime('%d/%m/%Y')}")

    y = title_y - 27

    y = _add_section_header(c, "Input Assumptions", y, left_margin, content_width, page_height)
    y = _draw_table(c, ["Parameter", "Value", "Unit"], _input_rows(inputs), left_margin, y,
                    [210, 130, 155], page_height=page_height)
    y -= 15

    y = _add_section_header(c, "Feasibility Results", y, left_margin, content_width, page_height)
    y = _draw_table(c, ["Metric", "Value"], _result_rows(results), left_margin, y,
                    [250, 245], page_height=page_height)
    y -= 15

    y = _add_section_header(c, "Scenario Analysis", y, left_margin, content_width, page_height)
    y = _draw_table(c, ["Scenario", "NPV", "IRR", "Payback", "Revenue"], _scenario_rows(scenarios),
                    left_margin, y, [95, 110, 80, 90, 120], page_height=page_height)
    y -= 15

    y = _add_section_header(c, "Cash Flow Projection", y, left_margin, content_width, page_height)
    cf_rows = [[
        str(row["year"]),
        _fmt_inr(row["cash_flow"]),
        _fmt_num(row["discount_factor"], 4),
        _fmt_inr(row["discounted_cash_flow"]),
        _fmt_inr(row["cumulative_discounted_cash_flow"]),
    ] for row in projection]
    y = _draw_table(c, ["Year", "Cash Flow", "Discount Factor", "Discounted", "Cumulative (disc.)"], cf_rows,
                    left_margin, y, [45, 120, 85, 120, 125], font_size=7, page_height=page_height)

    c.save()
    buf.seek(0)
    pdf_bytes = buf.read()
    logger.info("Feasibility PDF export: %d bytes for %s", len(pdf_bytes), project_name or "untitled project")
    return pdf_bytes


def export_feasibility_excel(
    inputs: FeasibilityInputs,
    results: dict,
    scenarios: list[dict],
    projection: list[dict],
    project_name: str | None = None,
) -> bytes:
    from openpyxl import Workbook
    from openpyxl.styles import Font

    wb = Workbook()
    wb.remove(wb.active)
    title = f"Project: {project_name or 'Untitled project'}"

    ws = wb.create_sheet("Inputs")
    ws.append(["Input Assumptions"])
    ws.append([title])
    ws.append([])
    ws.append(["Parameter", "Value", "Unit"])
    for field, value in inputs.model_dump().items():
        label, unit = INPUT_LABELS.get(field, (_snake_to_title(field), ""))
        ws.append([label, value, unit])
    ws["A1"].font = Font(bold=True, size=14)
    ws.column_dimensions["A"].width = 30
    ws.column_dimensions["B"].width = 18
    ws.column_dimensions["C"].width = 22

    ws = wb.create_sheet("Results")
    ws.append(["Feasibility Results"])
    ws.append([title])
    ws.append([])
    ws.append(["Section", "Metric", "Value"])
    for section in ("production", "revenue", "costs", "investment", "metrics"):
        for key, value in results[section].items():
            if isinstance(value, float) and math.isinf(value):
                value = "Never"
            ws.append([_snake_to_title(section), _snake_to_title(key), value])
    ws["A1"].font = Font(bold=True, size=14)
    ws.column_dimensions["A"].width = 15
    ws.column_dimensions["B"].width = 22
    ws.column_dimensions["C"].width = 22

    ws = wb.create_sheet("Scenarios")
    ws.append(["Scenario Analysis"])
    ws.append([])
    ws.append(["Scenario", "NPV (INR Cr)", "IRR (%)", "Payback (years)", "Revenue (INR Cr)"])
    for s in scenarios:
        payback = "Never" if math.isinf(s["payback"]) else s["payback"]
        ws.append([s["name"], s["npv"], s["irr"], payback, s["revenue"]])
    ws["A1"].font = Font(bold=True, size=14)
    for col_letter, w in [("A", 16), ("B", 16), ("C", 12), ("D", 16), ("E", 18)]:
        ws.column_dimensions[col_letter].width = w

    ws = wb.create_sheet("Cash Flow")
    ws.append(["Cash Flow Projection"])
    ws.append([])
    ws.append(["Year", "Cash Flow", "Discount Factor", "Discounted Cash Flow",
               "Cumulative Cash Flow", "Cumulative Discounted Cash Flow"])
    for row in projection:
        ws.append([
            row["year"],
            row["cash_flow"],
            row["discount_factor"],
            row["discounted_cash_flow"],
            row["cumulative_cash_flow"],
            row["cumulative_discounted_cash_flow"],
        ])
    ws["A1"].font = Font(bold=True, size=14)
    for col_letter, w in [("A", 8), ("B", 18), ("C", 16), ("D", 22), ("E", 22), ("F", 30)]:
        ws.column_dimensions[col_letter].width = w

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.read()


def summarize_in_crores(results: dict) -> dict:
    return {
        "revenue": to_crores(results["revenue"]["total"]),
        "investment": to_crores(results["investment"]["total"]),
        "subsidy": to_crores(results["investment"]["subsidy"]),
        "net_investment": to_crores(results["investment"]["net"]),
        "net_cash_flow": to_crores(results["costs"]["net_cash_flow"]),
        "npv": to_crores(results["metrics"]["npv"]),
    }
