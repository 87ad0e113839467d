from aihub.schemas.statistics import (
    AmountBreakdownItem,
    OverviewResponse,
    ProjectionResponse,
    StatisticsResponse,
)

__all__ = [
    "AmountBreakdownItem",
    "OverviewResponse",
    "ProjectionResponse",
    "StatisticsResponse",
]
