"""Middleware package for FastAPI application"""
from coursepush.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
