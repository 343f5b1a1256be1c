"""Utility module for the FTP client engine.

This module provides cross-cutting utilities:
- Logging: Configured logging with secret redaction
- Validators: Endpoint and credential validation
- Threading: Running session commands off the UI thread
"""
