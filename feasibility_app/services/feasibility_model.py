import math
import logging

from feasibility_app.models.schemas import FeasibilityInputs

logger = logging.getLogger(__name__)


ANALYSIS_YEARS = 20
DAYS_PER_YEAR = 365
CRORE = 10_000_000

# Emission factors: kg CH4 per m3 biogas, CO2e multiplier for CH4, kg per tonne
METHANE_KG_PER_M3_BIOGAS = 0.67
METHANE_CO2E_FACTOR = 25
KG_PER_TONNE = 1000

IRR_INITIAL_GUESS = 0.10
IRR_MAX_ITERATIONS = 100
IRR_NPV_TOLERANCE = 0.01
IRR_MIN_DERIVATIVE = 1e-10
IRR_LOWER_BOUND = -0.99
IRR_UPPER_BOUND = 10.0

# With nothing invested the rate of return is undefined. A positive cash flow
# reports this fixed sentinel (percent) instead of a computed rate.
NO_INVESTMENT_IRR = 1000

PROFITABLE = "Profitable"
NOT_PROFITABLE = "Not Profitable"

DEFAULT_INPUTS = {
    "cattle_count": 1000,
    "avg_dung_per_cattle": 30,
    "methane_potential": 0.35,
    "plant_efficiency": 0.75,
    "selling_price": 45,
    "carbon_credit_price": 1200,
    "construction_cost": 50_000_000,
    "operating_cost_ratio": 0.35,
    "subsidy_percentage": 60,
    "discount_rate": 12,
}

SCENARIOS = [
    {"name": "Conservative", "cattleMultiplier": 0.8, "priceMultiplier": 0.9, "efficiencyMultiplier": 0.9},
    {"name": "Base Case", "cattleMultiplier": 1.0, "priceMultiplier": 1.0, "efficiencyMultiplier": 1.0},
    {"name": "Optimistic", "cattleMultiplier": 1.2, "priceMultiplier": 1.1, "efficiencyMultiplier": 1.1},
]


class FeasibilityValidationError(ValueError):
    """Raised when one or more inputs fall outside their allowed range.

    ``errors`` holds every message from :func:`validate_inputs`, so callers
    can report all violations at once.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid inputs: {', '.join(self.errors)}")


class ArithmeticPreconditionError(ArithmeticError):
    """Raised by the NPV/IRR helpers when called with an unusable rate or investment."""


def validate_inputs(inputs: FeasibilityInputs) -> list[str]:
    errors = []

    if inputs.cattle_count <= 0:
        errors.append("Cattle count must be greater than 0")
    if inputs.avg_dung_per_cattle <= 0:
        errors.append("Average dung per cattle must be greater than 0")
    if inputs.methane_potential <= 0:
        errors.append("Methane potential must be greater than 0")
    if inputs.plant_efficiency <= 0 or inputs.plant_efficiency > 1:
        errors.append("Plant efficiency must be between 0 and 1")
    if inputs.selling_price <= 0:
        errors.append("Selling price must be greater than 0")
    if inputs.carbon_credit_price < 0:
        errors.append("Carbon credit price cannot be negative")
    if inputs.construction_cost <= 0:
        errors.append("Construction cost must be greater than 0")
    if inputs.operating_cost_ratio < 0 or inputs.operating_cost_ratio > 1:
        errors.append("Operating cost ratio must be between 0 and 1")
    if inputs.subsidy_percentage < 0 or inputs.subsidy_percentage > 100:
        errors.append("Subsidy percentage must be between 0 and 100")
    if inputs.discount_rate <= 0:
        errors.append("Discount rate must be greater than 0")

    return errors


def calculate_npv(cash_flow: float, investment: float, discount_rate: float, years: int) -> float:
    """Net present value of a level annual cash flow.

    ``discount_rate`` is a percentage (12 means 12%). A non-positive horizon
    returns ``-investment``.
    """
    if years <= 0:
        return -investment
    if discount_rate <= 0:
        raise ArithmeticPreconditionError("Discount rate must be positive")

    rate = discount_rate / 100
    npv = -investment
    for year in range(1, years + 1):
        try:
            factor = math.pow(1 + rate, year)
        except OverflowError:
            # factors only grow from here, so every remaining term is zero
            break
        npv += cash_flow / factor
    return npv


def calculate_irr(cash_flow: float, investment: float, years: int) -> float:
    """Internal rate of return (percent) of a level annual cash flow.

    Newton-Raphson from 10%, stopping once |NPV| drops under 0.01, the
    derivative vanishes, or 100 iterations pass. Each step is clamped to
    [-99%, 1000%]. Iteration also stops, keeping the current rate, when the
    NPV at that rate is no longer a finite number.
    """
    if years <= 0:
        return 0
    if investment <= 0:
        raise ArithmeticPreconditionError("Investment must be positive")
    if cash_flow <= 0:
        return 0

    irr = IRR_INITIAL_GUESS
    for _ in range(IRR_MAX_ITERATIONS):
        npv = -investment
        dnpv = 0.0
        for year in range(1, years + 1):
            try:
                factor = math.pow(1 + irr, year)
            except OverflowError:
                break
            if factor * (1 + irr) == 0:
                npv = math.inf
                break
            npv += cash_flow / factor
            dnpv -= year * cash_flow / (factor * (1 + irr))

        if not (math.isfinite(npv) and math.isfinite(dnpv)):
            break
        if abs(npv) < IRR_NPV_TOLERANCE:
            break
        if abs(dnpv) < IRR_MIN_DERIVATIVE:
            break

        irr = min(max(irr - npv / dnpv, IRR_LOWER_BOUND), IRR_UPPER_BOUND)

    return irr * 100


def calculate_production(inputs: FeasibilityInputs) -> dict:
    daily_dung = inputs.cattle_count * inputs.avg_dung_per_cattle
    theoretical_biogas = daily_dung * inputs.methane_potential
    daily_biogas = theoretical_biogas * inputs.plant_efficiency
    annual_biogas = daily_biogas * DAYS_PER_YEAR

    return {
        "daily_dung": daily_dung,
        "daily_biogas": daily_biogas,
        "annual_biogas": annual_biogas,
    }


def calculate_carbon_credit_tonnes(daily_biogas: float) -> float:
    # m3 biogas -> kg CH4 -> kg CO2e, annualised, then to tonnes
    return (daily_biogas * METHANE_KG_PER_M3_BIOGAS * METHANE_CO2E_FACTOR * DAYS_PER_YEAR) / KG_PER_TONNE


def calculate_revenue(production: dict, inputs: FeasibilityInputs) -> dict:
    biogas_revenue = production["annual_biogas"] * inputs.selling_price
    carbon_credit_tonnes = calculate_carbon_credit_tonnes(production["daily_biogas"])
    carbon_credit_revenue = carbon_credit_tonnes * inputs.carbon_credit_price

    return {
        "biogas": biogas_revenue,
        "carbon_credits": carbon_credit_revenue,
        "total": biogas_revenue + carbon_credit_revenue,
    }


def calculate_costs_and_investment(revenue: dict, inputs: FeasibilityInputs) -> dict:
    operating = revenue["total"] * inputs.operating_cost_ratio
    net_cash_flow = revenue["total"] - operating

    total_investment = inputs.construction_cost
    subsidy = total_investment * (inputs.subsidy_percentage / 100)
    net_investment = total_investment - subsidy

    return {
        "costs": {
            "operating": operating,
            "net_cash_flow": net_cash_flow,
        },
        "investment": {
            "total": total_investment,
            "subsidy": subsidy,
            "net": net_investment,
        },
    }


def calculate_financial_metrics(costs: dict, investment: dict, discount_rate: float, years: int = ANALYSIS_YEARS) -> dict:
    net_cash_flow = costs["net_cash_flow"]
    net_investment = investment["net"]

    if net_investment > 0 and net_cash_flow > 0:
        payback_period = net_investment / net_cash_flow
    elif net_investment == 0:
        payback_period = 0
    else:
        payback_period = math.inf

    if net_investment > 0:
        npv = calculate_npv(net_cash_flow, net_investment, discount_rate, years)
        irr = calculate_irr(net_cash_flow, net_investment, years)
    else:
        # Fully subsidised: undiscounted cash over the horizon stands in for NPV
        npv = net_cash_flow * years
        irr = NO_INVESTMENT_IRR if net_cash_flow > 0 else 0

    return {
        "payback_period": payback_period,
        "npv": npv,
        "irr": irr,
        "profitability": PROFITABLE if npv > 0 else NOT_PROFITABLE,
    }


def calculate_feasibility(inputs: FeasibilityInputs) -> dict:
    errors = validate_inputs(inputs)
    if errors:
        raise FeasibilityValidationError(errors)

    production = calculate_production(inputs)
    revenue = calculate_revenue(production, inputs)
    costs_and_investment = calculate_costs_and_investment(revenue, inputs)
    costs = costs_and_investment["costs"]
    investment = costs_and_investment["investment"]
    metrics = calculate_financial_metrics(costs, investment, inputs.discount_rate)

    logger.debug(
        "Feasibility: %d cattle, net investment %.0f, NPV %.0f, IRR %.2f%%",
        inputs.cattle_count, investment["net"], metrics["npv"], metrics["irr"],
    )

    return {
        "production": production,
        "revenue": revenue,
        "costs": costs,
        "investment": investment,
        "metrics": metrics,
    }


def to_crores(value: float) -> float:
    return value / CRORE


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def generate_scenario_analysis(base_inputs: FeasibilityInputs) -> list[dict]:
    results = []
    for scenario in SCENARIOS:
        scenario_inputs = base_inputs.model_copy(update={
            "cattle_count": _round_half_up(base_inputs.cattle_count * scenario["cattleMultiplier"]),
            "selling_price": base_inputs.selling_price * scenario["priceMultiplier"],
            "plant_efficiency": base_inputs.plant_efficiency * scenario["efficiencyMultiplier"],
        })
        feasibility = calculate_feasibility(scenario_inputs)

        results.append({
            "name": scenario["name"],
            "npv": to_crores(feasibility["metrics"]["npv"]),
            "irr": feasibility["metrics"]["irr"],
            "payback": feasibility["metrics"]["payback_period"],
            "revenue": to_crores(feasibility["revenue"]["total"]),
        })
    return results


def build_cash_flow_projection(results: dict, discount_rate: float, years: int = ANALYSIS_YEARS) -> list[dict]:
    """Year-by-year cash flow schedule behind the NPV figure.

    Year 0 carries the net investment as an outflow; every later year carries
    the level net cash flow. Discounting uses ``discount_rate`` in percent.
    """
    net_investment = results["investment"]["net"]
    net_cash_flow = results["costs"]["net_cash_flow"]
    rate = discount_rate / 100

    cumulative = -net_investment
    cumulative_discounted = -net_investment
    projection = [{
        "year": 0,
        "cash_flow": -net_investment,
        "discount_factor": 1.0,
        "discounted_cash_flow": -net_investment,
        "cumulative_cash_flow": cumulative,
        "cumulative_discounted_cash_flow": cumulative_discounted,
    }]

    for year in range(1, years + 1):
        discount_factor = 1 / math.pow(1 + rate, year)
        discounted = net_cash_flow * discount_factor
        cumulative += net_cash_flow
        cumulative_discounted += discounted
        projection.append({
            "year": year,
            "cash_flow": net_cash_flow,
            "discount_factor": discount_factor,
            "discounted_cash_flow": discounted,
            "cumulative_cash_flow": cumulative,
            "cumulative_discounted_cash_flow": cumulative_discounted,
        })

    return projection
