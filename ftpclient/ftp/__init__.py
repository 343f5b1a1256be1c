"""FTP protocol module for the FTP client engine.

This module handles all FTP-related functionality:
- ControlChannel: Command/reply exchange on the control connection
- DataChannelManager: Passive and active data connections
- CommandDispatcher: Protocol sequences for each Command variant
- Session: The object callers drive, one command at a time
- Exceptions: FTP-specific error types
"""
