"""Leadhub - Directus lead pipeline"""

__version__ = "1.0.0"
