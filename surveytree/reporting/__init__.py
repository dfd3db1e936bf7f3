"""
Reporting modules.

Includes:
- plots: Tuning-result and feature-importance figures
"""
