from .loader import load_project
from .types import ConfigError, ProjectConfig, ServiceConfig

__all__ = ["load_project", "ProjectConfig", "ServiceConfig", "ConfigError"]
