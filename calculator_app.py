#!/usr/bin/env python3
"""
Calculator app: serves the calculator tool to the hosting platform.

The platform starts this process with TOOLHOST_APP_NAME and either
TOOLHOST_APP_SOCK (unix socket) or TOOLHOST_APP_PORT set.

Usage:
    TOOLHOST_APP_NAME=calculator TOOLHOST_APP_PORT=5997 python calculator_app.py
"""

import sys

from toolhost import ConfigurationError, ToolApp
from toolhost.tools.calculator import TOOL as calculator


def main() -> None:
    try:
        ToolApp().register_tool(calculator).serve()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
