"""
Core utilities and configuration for the sales reconciliation backend.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database engine, session management and dialect-aware upserts
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import SchemaValidationError, OracleError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "setup_logging",
    # Exceptions
    "PipelineException",
    "PayloadError",
    "SchemaValidationError",
    "NormalizationError",
    "OracleError",
    "OracleResponseError",
    "OracleUnavailableError",
    "AuthenticationError",
    "NetworkError",
    "RateLimitError",
    "LoadError",
    "UpsertError",
    "ReconciliationError",
    "RetryableError",
    "NonRetryableError",
]
