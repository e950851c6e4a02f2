"""
Folio - personal portfolio content manager.

An authenticated admin area for profile, skills, projects, experience,
education, achievements, hobbies and social links, plus a public portfolio
page, a contact form and an HTML CV.
"""

__version__ = "1.0.0"
__author__ = "Folio Contributors"

from .config import Config, load_config
from .errors import (
    AuthenticationError,
    AuthorizationError,
    BackendError,
    ConfigurationError,
    FolioError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .web import create_app

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "BackendError",
    "Config",
    "ConfigurationError",
    "FolioError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    "create_app",
    "load_config",
]
