"""Input validators for the FTP client engine.

Provides validation for endpoint and credential inputs before any
connection attempt. Nothing here touches the network.
"""

import re
from typing import Optional, Tuple, Union

from ftpclient.ftp.commands import Failure
from ftpclient.ftp.connection import Credentials, Endpoint
from ftpclient.ftp.exceptions import ErrorKind


DIGITS_PATTERN = re.compile(r'^[0-9]+$')

MAX_PORT = 65535


def validate_ip_address(ip: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a dotted-quad IPv4 address.

    Args:
        ip: IP address string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(ip, str) or not ip.strip():
        return False, "IP address is required"

    segments = ip.strip().split(".")
    if len(segments) != 4:
        return False, f"IP address must have 4 segments, got {len(segments)}: {ip}"

    for segment in segments:
        if not DIGITS_PATTERN.match(segment):
            return False, f"Invalid IP address segment {segment!r}: {ip}"
        if int(segment) > 255:
            return False, f"IP address segment out of range {segment}: {ip}"

    return True, None


def parse_port(port: Union[int, str]) -> Optional[int]:
    """
    Parse a port number from int or string input.

    Returns:
        Port number, or None if the input is not a non-negative integer
    """
    if isinstance(port, bool):
        return None
    if isinstance(port, int):
        return port if port >= 0 else None
    if isinstance(port, str) and DIGITS_PATTERN.match(port.strip()):
        return int(port.strip())
    return None


def validate_port(port: Union[int, str]) -> Tuple[bool, Optional[str]]:
    """
    Validate a port number.

    Args:
        port: Port number or its string form

    Returns:
        Tuple of (is_valid, error_message)
    """
    value = parse_port(port)
    if value is None:
        return False, f"Port must be a non-negative number, got {port!r}"

    if value > MAX_PORT:
        return False, f"Port must be between 0 and {MAX_PORT}, got {value}"

    return True, None


def validate_endpoint(host: str, port: Union[int, str]) -> Union[Endpoint, Failure]:
    """
    Validate host and port and build an Endpoint.

    Args:
        host: Dotted-quad IPv4 address
        port: Port number or its string form

    Returns:
        Endpoint, or Failure(INVALID_ADDRESS) describing the first problem
    """
    is_valid, error = validate_ip_address(host)
    if not is_valid:
        return Failure(ErrorKind.INVALID_ADDRESS, error)

    is_valid, error = validate_port(port)
    if not is_valid:
        return Failure(ErrorKind.INVALID_ADDRESS, error)

    return Endpoint(host=host.strip(), port=parse_port(port))


def validate_credentials(
    username: str,
    password: str,
    allow_empty_password: bool = False
) -> Union[Credentials, Failure]:
    """
    Validate login fields and build Credentials.

    Args:
        username: Login name
        password: Password
        allow_empty_password: Accept a blank password (anonymous logins)

    Returns:
        Credentials, or Failure(MISSING_FIELD) naming the empty field
    """
    if not username or not username.strip():
        return Failure(ErrorKind.MISSING_FIELD, "Username is required")

    if not allow_empty_password and (not password or not password.strip()):
        return Failure(ErrorKind.MISSING_FIELD, "Password is required")

    return Credentials(username=username.strip(), password=password or "")
