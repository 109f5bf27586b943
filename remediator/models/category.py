"""
Category Models
===============
A category is a root-cause grouping of diagnostics sharing one remediation
strategy.

CategoryDefinition — a static entry of the ordered catalogue.
Category           — a scheduled category with its computed priority.
"""
from pydantic import BaseModel, ConfigDict


class CategoryDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    base_priority: float
    root_cause: str
    strategy_id: str


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    priority: float
    root_cause: str
    strategy_id: str
    diagnostic_count: int = 0
    file_count: int = 0
