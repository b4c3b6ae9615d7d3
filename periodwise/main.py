from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import create_engine

from periodwise.data_source import Budget, BudgetDataSource
from periodwise.errors import BudgetNotFoundError, ConfigurationError, PeriodNotConfiguredError
from periodwise.logging_config import configure_logging
from periodwise.period_calculator import PeriodRange, compute_period_by_offset, iter_periods
from periodwise.period_view import CategoryNode, PeriodSection, PeriodSummary, PeriodViewBuilder
from periodwise.settings import (
    get_database_url,
    get_frontend_origin,
    get_log_level,
    get_max_rollover_depth,
)
from periodwise.sql_data_source import SqlBudgetDataSource, metadata

logger = structlog.get_logger()

MAX_PERIOD_LISTING = 60

database_url = get_database_url()
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_log_level())
    metadata.create_all(engine)
    logger.info("Starting periodwise API", database=engine.url.render_as_string(hide_password=True))
    yield
    logger.info("Shutting down periodwise API")
    engine.dispose()


app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_frontend_origin()],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


class PeriodResponse(BaseModel):
    start: date
    end: date
    days: int


class CategoryViewResponse(BaseModel):
    category_id: int
    name: str
    parent_id: int | None = None
    display_order: int
    is_income: bool
    rollover_type: str
    expected: Decimal
    recurring_expected: Decimal
    activity: Decimal
    available: Decimal
    rolled_over: Decimal
    children: list["CategoryViewResponse"] = []


CategoryViewResponse.model_rebuild()


class SectionResponse(BaseModel):
    expected: Decimal
    activity: Decimal
    available: Decimal
    categories: list[CategoryViewResponse]


class PeriodViewResponse(BaseModel):
    period_start: date
    period_end: date
    budgetable: Decimal
    total_budgeted: Decimal
    left_to_budget: Decimal
    net_total_available: Decimal
    recurring_expected: Decimal
    available_pool: Decimal
    total_rolled_over: Decimal
    inflow: SectionResponse
    outflow: SectionResponse


def get_data_source() -> Iterator[BudgetDataSource]:
    with engine.begin() as conn:
        yield SqlBudgetDataSource(conn)


def get_workspace_id(x_workspace_id: str | None = Header(None, alias="x-workspace-id")) -> int:
    if not x_workspace_id:
        raise HTTPException(status_code=401, detail="Missing workspace identity.")
    try:
        return int(x_workspace_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid workspace identity.") from exc


def load_budget(data_source: BudgetDataSource, workspace_id: int, budget_id: int) -> Budget:
    try:
        budget = data_source.find_budget(workspace_id, budget_id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if budget is None:
        raise HTTPException(status_code=404, detail=str(BudgetNotFoundError(budget_id)))
    if budget.recurrence is None:
        raise HTTPException(status_code=400, detail=str(PeriodNotConfiguredError(budget_id)))
    return budget


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/budgets/{budget_id}/period", response_model=PeriodResponse)
def get_period(
    budget_id: int,
    offset: int = Query(0),
    workspace_id: int = Depends(get_workspace_id),
    data_source: BudgetDataSource = Depends(get_data_source),
) -> PeriodResponse:
    budget = load_budget(data_source, workspace_id, budget_id)
    return to_period_response(compute_period_by_offset(budget.recurrence, offset))


@app.get("/budgets/{budget_id}/periods", response_model=list[PeriodResponse])
def list_periods(
    budget_id: int,
    offset: int = Query(0),
    count: int = Query(6, ge=1, le=MAX_PERIOD_LISTING),
    workspace_id: int = Depends(get_workspace_id),
    data_source: BudgetDataSource = Depends(get_data_source),
) -> list[PeriodResponse]:
    budget = load_budget(data_source, workspace_id, budget_id)
    first = compute_period_by_offset(budget.recurrence, offset)
    return [to_period_response(period) for period in iter_periods(budget.recurrence, first, count)]


@app.get("/budgets/{budget_id}/view", response_model=PeriodViewResponse)
def get_period_view(
    budget_id: int,
    offset: int = Query(0),
    period_start: date | None = Query(None),
    workspace_id: int = Depends(get_workspace_id),
    data_source: BudgetDataSource = Depends(get_data_source),
) -> PeriodViewResponse:
    budget = load_budget(data_source, workspace_id, budget_id)
    builder = PeriodViewBuilder(data_source, max_rollover_depth=get_max_rollover_depth())
    if period_start is not None:
        summary = builder.view_for_date(budget, period_start)
    else:
        summary = builder.view_for_offset(budget, offset)
    return to_view_response(summary)


def to_period_response(period: PeriodRange) -> PeriodResponse:
    return PeriodResponse(start=period.start, end=period.end, days=period.days)


def to_category_response(node: CategoryNode) -> CategoryViewResponse:
    return CategoryViewResponse(
        category_id=node.category_id,
        name=node.name,
        parent_id=node.parent_id,
        display_order=node.display_order,
        is_income=node.is_income,
        rollover_type=node.rollover_policy.value,
        expected=node.expected,
        recurring_expected=node.recurring_expected,
        activity=node.activity,
        available=node.available,
        rolled_over=node.rolled_over,
        children=[to_category_response(child) for child in node.children],
    )


def to_section_response(section: PeriodSection) -> SectionResponse:
    return SectionResponse(
        expected=section.expected,
        activity=section.activity,
        available=section.available,
        categories=[to_category_response(node) for node in section.categories],
    )


def to_view_response(summary: PeriodSummary) -> PeriodViewResponse:
    return PeriodViewResponse(
        period_start=summary.period_start,
        period_end=summary.period_end,
        budgetable=summary.budgetable,
        total_budgeted=summary.total_budgeted,
        left_to_budget=summary.left_to_budget,
        net_total_available=summary.net_total_available,
        recurring_expected=summary.recurring_expected,
        available_pool=summary.available_pool,
        total_rolled_over=summary.total_rolled_over,
        inflow=to_section_response(summary.inflow),
        outflow=to_section_response(summary.outflow),
    )
