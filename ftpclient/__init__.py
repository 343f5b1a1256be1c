"""FTP client engine.

Programmatic FTP client used by the command runner front end:
- ftp: control/data channels, command dispatch and sessions
- config: settings persistence and keyring credentials
- utils: logging, input validation and background execution
"""
