"""
Analytics module exposing view tracking and reporting over HTTP.
"""

from .routes import create_analytics_routes
from .factory import create_analytics_module

__all__ = ['create_analytics_routes', 'create_analytics_module']
