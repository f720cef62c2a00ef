"""driftsync: local-first edit history and two-replica sync for remote files."""

from .config import Config, load_config
from .workspace import Workspace

__version__ = "0.1.0"

__all__ = ["Config", "Workspace", "load_config"]
