# common/__init__.py

# Shared pieces used by both the AMI core and the web layer:
# logger setup, the Redis publisher and the boundary Pydantic models.

from . import logger_setup
from . import redis_client
from . import data_models

__all__ = [
    "logger_setup",
    "redis_client",
    "data_models"
]
