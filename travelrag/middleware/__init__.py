"""Middleware modules for FastAPI application"""
from .timeout import CustomTimeoutMiddleware

__all__ = ["CustomTimeoutMiddleware"]
