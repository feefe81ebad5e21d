from .pipeline import PipelineOrchestrator
from .service import BotDetectionService, build_service
from .session_manager import SessionManager

__all__ = ["BotDetectionService", "PipelineOrchestrator", "SessionManager", "build_service"]
