# ABOUTME: Utilities package initialization for Saturn smart deploy
# ABOUTME: Contains shared utilities for the API client, safety, and logging

"""
Saturn Deploy Utilities Package

Shared utilities:
    - client.py: Saturn API client with retry logic
    - safety.py: Read-only mode and rate limiting
    - logging.py: Structured logging with correlation IDs
"""
