"""
Shared utilities for surveytree.

Includes:
- logging: Logger setup and the LoggingMixin used by pipeline classes
- config: YAML configuration loading and validation
"""
