"""Output formatting utilities for CLI commands.

Consistent JSON envelopes and prefixed text messages for every command.
"""

import json
import sys
from typing import Any, Dict, List, Optional


def format_json_response(
    status: str,
    message: str = "",
    data: Optional[Dict[str, Any]] = None,
    errors: Optional[List[str]] = None
) -> str:
    """Format a consistent JSON response.

    Args:
        status: "success" or "error"
        message: Human-readable summary
        data: Command-specific data (optional)
        errors: List of error messages (optional)

    Returns:
        JSON string formatted for output

    Example:
        >>> format_json_response("success", "Found 3 results", {"total_results": 3})
        '{"status": "success", "message": "Found 3 results", "data": {"total_results": 3}, "errors": []}'
    """
    response = {
        "status": status,
        "message": message,
        "data": data or {},
        "errors": errors or []
    }
    return json.dumps(response, indent=2)


def print_json(
    status: str,
    message: str = "",
    data: Optional[Dict[str, Any]] = None,
    errors: Optional[List[str]] = None
):
    """Print JSON response to stdout."""
    print(format_json_response(status, message, data, errors))


def print_error(message: str, json_output: bool = False):
    """Print error message with [ERROR] prefix.

    Note:
        JSON errors include the [ERROR] prefix in the message for consistency
    """
    if json_output:
        print_json("error", f"[ERROR] {message}", errors=[message])
    else:
        print(f"[ERROR] {message}", file=sys.stderr)


def print_info(message: str, json_output: bool = False):
    """Print info message with [INFO] prefix (text mode only)."""
    if not json_output:
        print(f"[INFO] {message}")


def print_success(message: str, json_output: bool = False, data: Optional[Dict[str, Any]] = None):
    """Print success message, or a success envelope carrying data."""
    if json_output:
        print_json("success", message, data=data)
    else:
        print(message)


def print_warning(message: str, json_output: bool = False):
    """Print warning message with [WARNING] prefix (text mode only)."""
    if not json_output:
        print(f"[WARNING] {message}", file=sys.stderr)
