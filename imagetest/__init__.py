"""imagetest - container image test harness orchestration."""

__version__ = "0.1.0"
