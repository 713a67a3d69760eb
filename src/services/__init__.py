# noqa
from src.services.completeness import calculate_completeness
from src.services.session_service import SessionService
from src.services.factory import build_session_service

__all__ = ["calculate_completeness", "SessionService", "build_session_service"]
