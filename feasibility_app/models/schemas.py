"""
Pydantic models for the feasibility calculator.
These define the data shapes for API request validation and the engine's input record.
"""
from pydantic import BaseModel, Field
from typing import Optional


class FeasibilityInputs(BaseModel):
    cattle_count: int = Field(alias="cattleCount")
    avg_dung_per_cattle: float = Field(alias="avgDungPerCattle")
    methane_potential: float = Field(alias="methanePotential")
    plant_efficiency: float = Field(alias="plantEfficiency")
    selling_price: float = Field(alias="sellingPrice")
    carbon_credit_price: float = Field(alias="carbonCreditPrice")
    construction_cost: float = Field(alias="constructionCost")
    operating_cost_ratio: float = Field(alias="operatingCostRatio")
    subsidy_percentage: float = Field(alias="subsidyPercentage")
    discount_rate: float = Field(alias="discountRate")

    # Range checks belong to validate_inputs so every violation is reported together
    model_config = {"populate_by_name": True, "frozen": True, "allow_inf_nan": False}


class NPVRequest(BaseModel):
    cash_flow: float = Field(alias="cashFlow")
    investment: float
    discount_rate: float = Field(alias="discountRate")
    years: int

    model_config = {"populate_by_name": True, "allow_inf_nan": False}


class IRRRequest(BaseModel):
    cash_flow: float = Field(alias="cashFlow")
    investment: float
    years: int

    model_config = {"populate_by_name": True, "allow_inf_nan": False}


class ExportRequest(BaseModel):
    project_name: Optional[str] = Field(default=None, alias="projectName")
    inputs: FeasibilityInputs

    model_config = {"populate_by_name": True}
