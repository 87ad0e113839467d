from aihub.models.ai_model import AIModel
from aihub.models.ai_provider import AIProvider
from aihub.models.app import App
from aihub.models.app_user import AppUser
from aihub.models.generation_job import GenerationJob, JobStatus
from aihub.models.model_provider_config import ModelProviderConfig
from aihub.models.provider_usage_log import ProviderUsageLog
from aihub.models.revenuecat_event import EventCategory, RevenueCatEvent, RevenueCatEventType
from aihub.models.token_ledger_entry import TokenEntryType, TokenLedgerEntry

__all__ = [
    "AIModel",
    "AIProvider",
    "App",
    "AppUser",
    "EventCategory",
    "GenerationJob",
    "JobStatus",
    "ModelProviderConfig",
    "ProviderUsageLog",
    "RevenueCatEvent",
    "RevenueCatEventType",
    "TokenEntryType",
    "TokenLedgerEntry",
]
