"""Utility module for ftpsclient.

This module provides cross-cutting utilities:
- Logging: Configured logging with secret redaction
- Validators: Input validation for host, port, timeouts and paths
"""
