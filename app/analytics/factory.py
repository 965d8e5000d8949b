"""
Factory for creating the analytics module.
"""
from analytics_service import AnalyticsService
from .routes import create_analytics_routes


def create_analytics_module(service: AnalyticsService) -> dict:
    """
    Create the analytics module with all its components.

    Args:
        service: AnalyticsService wired to the configured document store

    Returns:
        Dictionary containing:
            - service: AnalyticsService instance
            - blueprint: Flask blueprint for routes
    """
    blueprint = create_analytics_routes(service)

    return {
        "service": service,
        "blueprint": blueprint
    }
