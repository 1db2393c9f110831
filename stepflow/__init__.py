"""
Stepflow: pipeline dependency-graph planning and execution orchestration.
"""

__version__ = "0.1.0"
