"""
Service components for featuremath.

This module provides configuration and the HTTP server.
"""

from featuremath.components.config import Config, ConfigManager
from featuremath.components.server import Server, ServerManager
