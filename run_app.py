#!/usr/bin/env python3
"""
Simple runner script for the analytics Flask application.
This script ensures the correct Python path is set, configures logging and runs the app.
"""

import sys
from pathlib import Path

# Add the current directory to Python path
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))

# Import and run the Flask app
from app.main import app
from analytics_service.logging_config import setup_logging, stop_logging

if __name__ == "__main__":
    # Import configuration
    from config_manager import get_app_config
    app_config = get_app_config()

    setup_logging(debug=app_config.debug)
    print("🚀 Starting analytics Flask application...")
    print(f"📁 Working directory: {current_dir}")

    poller = app.extensions["analytics_poller"]
    poller.start()
    try:
        # Run the Flask app; the reloader would start a second poller
        app.run(
            host=app_config.host,
            port=app_config.port,
            debug=app_config.debug,
            use_reloader=False
        )
    finally:
        poller.stop()
        stop_logging()
