"""
Console message helpers for the command-line interface.

Informational, success and warning messages go to stdout and errors to
stderr. Messages are coloured only when the stream is a terminal and
NO_COLOR is unset, so piped or captured output stays plain text. Logging is
configured separately in utils.logger.
"""

import os
import sys
import platform

RESET = '\033[0m'
STYLES = {
    'info': '\033[36m',
    'success': '\033[32m',
    'warning': '\033[33m',
    'error': '\033[31m',
}

_windows_ansi_enabled = False


def _use_color(stream):
    global _windows_ansi_enabled

    if os.environ.get('NO_COLOR') or not hasattr(stream, 'isatty') or not stream.isatty():
        return False
    if platform.system() == "Windows" and not _windows_ansi_enabled:
        os.system("")  # Enables ANSI escape sequences in the Windows console
        _windows_ansi_enabled = True
    return True


def _emit(kind, text, stream):
    if _use_color(stream):
        text = f"{STYLES[kind]}{text}{RESET}"
    print(text, file=stream)


def print_info(text):
    _emit('info', text, sys.stdout)


def print_success(text):
    _emit('success', text, sys.stdout)


def print_warning(text):
    _emit('warning', text, sys.stdout)


def print_error(text):
    _emit('error', text, sys.stderr)
