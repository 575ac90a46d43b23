"""
pytest configuration for logscan tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import os
import sys
from pathlib import Path

# Keep the real query-service settings out of tests
for _var in (
    "LOGSCAN_CLUSTER_URL",
    "LOGSCAN_DATABASE",
    "LOGSCAN_QUERY",
    "LOGSCAN_CONCURRENCY",
    "LOGSCAN_PATTERN",
    "LOGSCAN_PROXY_URL",
    "HTTPS_PROXY",
    "HTTP_PROXY",
):
    os.environ.pop(_var, None)

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))
