"""Installer task state and the base of the steps that move a task along."""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

LOG = logging.getLogger(__name__)

INSTALL_SERVICE_ID = "com.webos.appInstallService"


class TaskStep(enum.Enum):
    """Stages an install or remove task passes through; values are the config names."""

    IPK_PARSE_NEEDED = "IpkParseNeeded"
    IPK_PARSE_COMPLETE = "IpkParseComplete"
    GET_IPK_INFO_NEEDED = "GetIpkInfoNeeded"
    GET_IPK_INFO_REQUESTED = "GetIpkInfoRequested"
    GET_IPK_INFO_COMPLETE = "GetIpkInfoComplete"
    APP_CLOSE_NEEDED = "AppCloseNeeded"
    APP_CLOSE_REQUESTED = "AppCloseRequested"
    APP_CLOSE_COMPLETE = "AppCloseComplete"
    IPK_INSTALL_NEEDED = "IpkInstallNeeded"
    IPK_INSTALL_REQUESTED = "IpkInstallRequested"
    IPK_INSTALL_STARTING = "IpkInstallStarting"
    IPK_INSTALL_UNPACKING = "IpkInstallUnpacking"
    IPK_INSTALL_VERIFYING = "IpkInstallVerifying"
    IPK_INSTALL_CURRENT = "IpkInstallCurrent"
    IPK_INSTALL_COMPLETE = "IpkInstallComplete"
    INSTALL_SMACK_NEEDED = "InstallSmackNeeded"
    INSTALL_SMACK_COMPLETE = "InstallSmackComplete"
    SERVICE_INSTALL_NEEDED = "ServiceInstallNeeded"
    SERVICE_INSTALL_REQUESTED = "ServiceInstallRequested"
    SERVICE_INSTALL_COMPLETE = "ServiceInstallComplete"
    INSTALL_COMPLETE = "InstallComplete"
    REMOVE_STARTED = "RemoveStarted"
    REMOVE_JAIL_NEEDED = "RemoveJailNeeded"
    REMOVE_JAIL_REQUESTED = "RemoveJailRequested"
    REMOVE_JAIL_COMPLETE = "RemoveJailComplete"
    REMOVE_SMACK_NEEDED = "RemoveSmackNeeded"
    REMOVE_SMACK_COMPLETE = "RemoveSmackComplete"
    SERVICE_UNINSTALL_NEEDED = "ServiceUninstallNeeded"
    SERVICE_UNINSTALL_COMPLETE = "ServiceUninstallComplete"
    IPK_REMOVE_NEEDED = "IpkRemoveNeeded"
    IPK_REMOVE_REQUESTED = "IpkRemoveRequested"
    IPK_REMOVE_COMPLETE = "IpkRemoveComplete"
    DATA_REMOVE_NEEDED = "DataRemoveNeeded"
    DATA_REMOVE_REQUESTED = "DataRemoveRequested"
    DATA_REMOVE_COMPLETE = "DataRemoveComplete"
    REMOVE_COMPLETE = "RemoveComplete"


class ErrorKind(enum.Enum):
    INSTALL = "ErrorInstall"
    REMOVE = "ErrorRemove"


class ErrorCode(enum.Enum):
    INSTALL_GENERAL = "APP_INSTALL_ERR_GENERAL"
    INSTALL_INSTALL = "APP_INSTALL_ERR_INSTALL"
    INSTALL_DISKFULL = "APP_INSTALL_ERR_DISKFULL"
    INSTALL_PRIVILEGED = "APP_INSTALL_ERR_PRIVILEGED"
    INSTALL_SMACK = "APP_INSTALL_ERR_SMACK"
    REMOVE_GENERAL = "APP_REMOVE_ERR_GENERAL"
    REMOVE_REMOVE = "APP_REMOVE_ERR_REMOVE"
    REMOVE_PRIVILEGED = "APP_REMOVE_ERR_PRIVILEGED"


@dataclass
class PathInfo:
    """Directories where the system bus files of a package's services go."""

    verified: bool = False
    root: str = ""
    legacy_roles: str = ""
    legacy_services: str = ""
    roled: str = ""
    serviced: str = ""
    permissiond: str = ""
    api_permissiond: str = ""
    groupd: str = ""
    manifestsd: str = ""


@dataclass
class Task:
    """The state of one install or remove request as the steps see it."""

    name: str = "InstallTask"
    param: dict = field(default_factory=dict)
    app_id: str = ""
    package_id: str = ""
    sender: str = ""
    install_base_path: str = ""
    services: list = field(default_factory=list)
    app_info: dict = field(default_factory=dict)
    origin_app_info: Any = None
    unpacked: bool = False
    allow_reinstall: bool = False
    unpack_file_size: int = 0
    has_installed_size_with_control_file: bool = False
    update: bool = False
    step: Optional[TaskStep] = None
    history: list = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error_code: Optional[ErrorCode] = None
    error_text: str = ""
    on_proceed: Optional[Callable[["Task"], None]] = None
    proceed_count: int = 0

    @property
    def verify(self) -> bool:
        return self.param.get("verify") is True

    @property
    def is_remove(self) -> bool:
        return self.name == "RemoveTask"

    @property
    def failed(self) -> bool:
        return self.error_kind is not None

    def set_step(self, step: TaskStep) -> None:
        self.step = step
        self.history.append(step)

    def set_error(self, kind: ErrorKind, code: ErrorCode, text: str) -> None:
        self.error_kind = kind
        self.error_code = code
        self.error_text = text

    def proceed(self) -> None:
        """Hand control back to the task so it can run its next step."""
        self.proceed_count += 1
        if self.on_proceed is not None:
            self.on_proceed(self)


def _run_now(function: Callable[[], Any]) -> None:
    function()


class Step(abc.ABC):
    """One stage of a task; ``proceed`` starts it and reports whether it started."""

    def __init__(self) -> None:
        self.app_id = ""
        self.parent_task: Optional[Task] = None

    @abc.abstractmethod
    def proceed(self, task: Task) -> bool:
        """Start this step for ``task``."""


class RemoveStartStep(Step):
    """Marks a remove task as started."""

    def __init__(self, defer: Callable[[Callable[[], Any]], Any] = _run_now) -> None:
        super().__init__()
        self.defer = defer

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        task.set_step(TaskStep.REMOVE_STARTED)
        self.defer(task.proceed)
        return True


class RemoveJailStep(Step):
    """Removes the jail directory of an application.

    ``jailer(app_id, callback)`` starts the removal and returns False if it
    could not be started; ``callback(success)`` reports the outcome.
    """

    def __init__(
        self,
        jailer: Callable[[str, Callable[[bool], None]], bool],
        defer: Callable[[Callable[[], Any]], Any] = _run_now,
    ) -> None:
        super().__init__()
        self.jailer = jailer
        self.defer = defer

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        task.set_step(TaskStep.REMOVE_JAIL_REQUESTED)
        if not self.jailer(task.app_id, self.on_remove_jail):
            LOG.warning("unable to call Jailer for %s", task.app_id)
            self.defer(lambda: self.on_remove_jail(False))
        return True

    def on_remove_jail(self, success: bool) -> None:
        task = self.parent_task
        if not success:
            LOG.warning("failed to remove jailer directory of %s", task.app_id)
        task.set_step(TaskStep.REMOVE_JAIL_COMPLETE)
        task.proceed()


class GetIpkInfoStep(Step):
    """Fetches the information of the currently installed package.

    ``app_info_query(session_id, package_id, callback)`` sends the request
    and returns whether it was sent. ``sessions`` is None when sessions are
    not in use; otherwise the first session is asked.
    """

    def __init__(
        self,
        app_info_query: Callable[[Optional[str], str, Callable[[dict], None]], bool],
        sessions: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__()
        self.app_info_query = app_info_query
        self.sessions = sessions

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        session_id: Optional[str] = None
        if self.sessions is not None:
            if not self.sessions:
                task.set_error(
                    ErrorKind.INSTALL,
                    ErrorCode.INSTALL_GENERAL,
                    "empty session list, cannot query getAppInfo",
                )
                task.proceed()
                return False
            session_id = self.sessions[0]

        task.set_step(TaskStep.GET_IPK_INFO_REQUESTED)
        return self.app_info_query(session_id, task.package_id, self.on_app_info)

    def on_app_info(self, result: dict) -> None:
        task = self.parent_task
        task.origin_app_info = result.get("appInfo") if isinstance(result, dict) else None
        task.set_step(TaskStep.GET_IPK_INFO_COMPLETE)
        task.proceed()