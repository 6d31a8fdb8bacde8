"""
labplay — Lab Playground notebook orchestrator. Use as CLI or library.

CLI:
    labplay
    lab › load sales.csv
    lab › analyze
    lab › select random_forest

Library:
    from labplay import Lab

    lab = Lab()
    lab.upload("sales.csv")
    lab.analyze()
"""

__version__ = "0.1.0"

from labplay.api import Lab
from labplay.cli.client import BackendError
from labplay.config import LabConfig

__all__ = ["Lab", "LabConfig", "BackendError", "__version__"]
