"""
Pytest configuration file for backend testing.
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def pytest_configure(config):
    from core.logging_config import configure_logging

    configure_logging()
