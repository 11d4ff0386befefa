"""Structured logging to the console or to the standard logging system."""

from __future__ import annotations

import enum
import functools
import json
import logging
import sys
from typing import Any, TextIO


class ErrCode(enum.IntEnum):
    NATIVE_SPAWN = -202
    APP_LOCKED = -102
    LAUNCH = -1
    UNKNOWN = 0
    NATIVE_IS_LAUNCHING = -203
    GENERAL = 1
    INVALID_PAYLOAD = 2
    DEPRECATED = 999


class LogLevel(enum.IntEnum):
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


class LogType(enum.Enum):
    CONSOLE = "console"
    PMLOG = "pmlog"


_LETTERS = {
    LogLevel.DEBUG: "D",
    LogLevel.INFO: "I",
    LogLevel.WARNING: "W",
    LogLevel.ERROR: "E",
}

_STD_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def level_letter(level: LogLevel) -> str:
    """Return the one-letter tag of a log level."""
    return _LETTERS.get(LogLevel(level), "D")


def bool_to_string(value: bool) -> str:
    return "true" if value else "false"


def _stringify(payload: Any) -> str:
    return json.dumps(payload, indent=4)


class Logger:
    """Writes records of who did what, with optional detail text."""

    def __init__(
        self,
        level: LogLevel = LogLevel.DEBUG,
        log_type: LogType = LogType.PMLOG,
        stream: TextIO | None = None,
        std_logger: logging.Logger | None = None,
    ) -> None:
        self.level = LogLevel(level)
        self.log_type = LogType(log_type)
        self.stream = stream
        self.std_logger = std_logger or logging.getLogger("appinstalld")

    def set_level(self, level: LogLevel) -> None:
        self.level = LogLevel(level)

    def set_type(self, log_type: LogType) -> None:
        self.log_type = LogType(log_type)

    def write(
        self,
        level: LogLevel,
        class_name: str,
        function_name: str,
        who: str,
        what: str,
        detail: str,
    ) -> None:
        """Emit one record if ``level`` is at or above the configured level."""
        level = LogLevel(level)
        if level < self.level:
            return
        if self.log_type is LogType.CONSOLE:
            self._write_console(level, class_name, function_name, who, what, detail)
        else:
            self._write_std(level, class_name, function_name, who, what, detail)

    def _write_console(self, level, class_name, function_name, who, what, detail) -> None:
        head = f"[{level_letter(level)}][{class_name}][{function_name}]"
        if who:
            head += f"[{who}]"
        text = f"{head} {what}\n"
        if detail:
            text += f"{detail}\n"
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(text)

    def _write_std(self, level, class_name, function_name, who, what, detail) -> None:
        if level is LogLevel.DEBUG:
            self.std_logger.debug("%s", detail)
            return
        fields = json.dumps({"function": function_name, "who": who, "what": what})
        if detail:
            self.std_logger.log(_STD_LEVELS[level], "%s %s %s", class_name, fields, detail)
        else:
            self.std_logger.log(_STD_LEVELS[level], "%s %s", class_name, fields)

    def debug(self, class_name: str, function_name: str, what: str, who: str = "", detail: str = "") -> None:
        self.write(LogLevel.DEBUG, class_name, function_name, who, what, detail)

    def info(self, class_name: str, function_name: str, what: str, who: str = "", detail: str = "") -> None:
        self.write(LogLevel.INFO, class_name, function_name, who, what, detail)

    def warning(self, class_name: str, function_name: str, what: str, who: str = "", detail: str = "") -> None:
        self.write(LogLevel.WARNING, class_name, function_name, who, what, detail)

    def error(self, class_name: str, function_name: str, what: str, who: str = "", detail: str = "") -> None:
        self.write(LogLevel.ERROR, class_name, function_name, who, what, detail)

    def log_api_request(self, class_name, function_name, kind, sender, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "APIRequest",
                   f"API({kind}) Sender({sender})", _stringify(payload))

    def log_api_response(self, class_name, function_name, kind, sender, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "APIResponse",
                   f"API({kind}) Sender({sender})", _stringify(payload))

    def log_call_request(self, class_name, function_name, method, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "CallRequest", method, _stringify(payload))

    def log_call_response(self, class_name, function_name, sender, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "CallResponse", sender, _stringify(payload))

    def log_subscription_request(self, class_name, function_name, method, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "SubscriptionRequest", method, _stringify(payload))

    def log_subscription_response(self, class_name, function_name, sender, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "SubscriptionResponse", sender, _stringify(payload))

    def log_subscription_post(self, class_name, function_name, key, payload) -> None:
        self.write(LogLevel.INFO, class_name, function_name, "SubscriptionPost", str(key), _stringify(payload))


@functools.lru_cache(maxsize=None)
def get_logger() -> Logger:
    """Return the process-wide logger."""
    return Logger()