from .config import config
from .db import db, session_scope
from .logging_setup import logger, get_logger
from .policy import EnginePolicy
from .exceptions import (
    LifecycleError, NotFoundError, ValidationError, ProjectionError, TaskGenerationError
)

__all__ = [
    'config',
    'db',
    'session_scope',
    'logger',
    'get_logger',
    'EnginePolicy',
    'LifecycleError',
    'NotFoundError',
    'ValidationError',
    'ProjectionError',
    'TaskGenerationError'
]
