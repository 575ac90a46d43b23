"""
logscan: scan remote job logs discovered by a Kusto query for a failure pattern.

Packages:
    kusto   - Progressive query client, frame codec and column decoder
    scan    - Admission gate, per-URI fetch-and-scan, orchestration
"""

from core import __version__

__all__ = ["__version__"]
