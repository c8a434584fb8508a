from .main import create_app
from .runner import OrchestratorRun

__all__ = ["create_app", "OrchestratorRun"]
