"""Closing a running application before it is installed over or removed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from appinstalld.step import (
    INSTALL_SERVICE_ID,
    ErrorCode,
    ErrorKind,
    Step,
    Task,
    TaskStep,
)

LOG = logging.getLogger(__name__)

_PRIVILEGED_PREFIXES = ("com.palm.", "com.webos.", "com.lge.")


@dataclass(frozen=True)
class CallItem:
    """One bus call in a chain.

    ``after`` names an earlier item of the same session whose result must be
    ``expected`` for this item to run. A ``nonstop`` item does not stop the
    chain when it fails.
    """

    name: str
    session_id: Optional[str] = None
    package_id: str = ""
    caller: str = ""
    nonstop: bool = False
    after: Optional[str] = None
    expected: bool = True


def is_privileged_package(package_id: str) -> bool:
    """Tell whether a package id is in a platform namespace."""
    return package_id.startswith(_PRIVILEGED_PREFIXES)


def build_call_items(session_id: Optional[str], package_id: str, is_remove: bool) -> list:
    """Return the calls that check, lock and close an app in one session."""
    items = [
        CallItem("AppInfo", session_id, package_id, INSTALL_SERVICE_ID, nonstop=True),
    ]
    if is_remove:
        items.append(CallItem("AppRemovable", after="AppInfo"))
    items += [
        CallItem("AppLock", session_id, package_id, INSTALL_SERVICE_ID, after="AppInfo"),
        CallItem("AppRunning", session_id, package_id, INSTALL_SERVICE_ID, nonstop=True),
        CallItem("AppClose", session_id, package_id, INSTALL_SERVICE_ID, after="AppRunning"),
        CallItem("SvcClose", session_id),
    ]
    return items


class AppCloseStep(Step):
    """Refuses privileged apps in developer mode, then closes the app.

    ``run_chain(items, callback)`` runs the calls and passes the final result
    to ``callback``; it returns whether the chain started. ``sessions`` is
    None when sessions are not in use.
    """

    def __init__(
        self,
        run_chain: Callable[[list, Callable[[dict], None]], bool],
        sessions: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__()
        self.run_chain = run_chain
        self.sessions = sessions

    def proceed(self, task: Task) -> bool:
        self.parent_task = task

        if not self.check_privileged_app():
            if task.is_remove:
                task.set_error(
                    ErrorKind.REMOVE,
                    ErrorCode.REMOVE_PRIVILEGED,
                    "Cannnot remove privileged app on developer mode",
                )
            else:
                task.set_error(
                    ErrorKind.INSTALL,
                    ErrorCode.INSTALL_PRIVILEGED,
                    "Cannnot install privileged app on developer mode",
                )
            task.proceed()
            return False

        session_ids = [None] if self.sessions is None else list(self.sessions)
        items = [
            item
            for session_id in session_ids
            for item in build_call_items(session_id, task.package_id, task.is_remove)
        ]

        task.set_step(TaskStep.APP_CLOSE_REQUESTED)
        return self.run_chain(items, self.on_app_closed)

    def check_privileged_app(self) -> bool:
        """False when an unverified package claims a platform namespace."""
        task = self.parent_task
        LOG.debug("check privileged app %s, verify=%s", task.package_id, task.verify)
        return task.verify or not is_privileged_package(task.package_id)

    def on_app_closed(self, result: dict) -> None:
        task = self.parent_task
        if result.get("returnValue") is True:
            task.set_step(TaskStep.APP_CLOSE_COMPLETE)
        else:
            error_text = result.get("errorText")
            error_text = error_text if isinstance(error_text, str) else ""
            if task.is_remove:
                task.set_error(ErrorKind.REMOVE, ErrorCode.REMOVE_REMOVE, error_text)
            else:
                task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, error_text)
        task.proceed()