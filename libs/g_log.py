#!/usr/bin/env python3
"""
GLog - Console Logging Helper

Timestamped console logging shared by the GCommander modules. Components take
a `logger_func` callable and default to `log`.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from datetime import datetime


def log(message: str):
    """Log message to console.

    Args:
        message: Message to log
    """
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {message}")
