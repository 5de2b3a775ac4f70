from .config import GatewayConfig, get_backend_url
from .errors import DreamPipelineError, ErrorKind

__all__ = ["GatewayConfig", "get_backend_url", "DreamPipelineError", "ErrorKind"]
