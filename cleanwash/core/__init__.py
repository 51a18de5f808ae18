"""
Core package for shared utilities.

This module makes the core directory a Python package, enabling proper
import resolution for shared utilities, middleware, and common functionality
across the backend application.
"""