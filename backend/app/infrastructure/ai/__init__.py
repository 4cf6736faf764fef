from app.infrastructure.ai.grok_service import GrokService, get_grok_service

__all__ = ["GrokService", "get_grok_service"]
