from aihub.repositories.statistics_repository import StatisticsRepository

__all__ = [
    "StatisticsRepository",
]
