"""Steps that parse an ipk package, install it, or install an unpackaged web app."""

from __future__ import annotations

import enum
import glob
import json
import logging
import os
import re
import shutil
from typing import Any, Callable, Optional

from appinstalld.settings import Settings, get_settings
from appinstalld.step import ErrorCode, ErrorKind, Step, Task, TaskStep

LOG = logging.getLogger(__name__)

# opkg functions whose failure means nothing was unpacked on the device.
OPKG_INSTALL_VALIDATION_ERROR_FUNCTIONS = frozenset(
    {
        "satisfy_dependencies_for:",
        "check_conflicts_for:",
        "verify_pkg_installable:",
        "opkg_download_pkg:",
        "opkg_verify_file:",
        "preinst_configure:",
        "check_data_file_clashes:",
    }
)

_PROGRESS_STEPS = {
    "starting": TaskStep.IPK_INSTALL_STARTING,
    "unpacking": TaskStep.IPK_INSTALL_UNPACKING,
    "verifying": TaskStep.IPK_INSTALL_VERIFYING,
    "installing": TaskStep.IPK_INSTALL_CURRENT,
    "done": TaskStep.IPK_INSTALL_COMPLETE,
}


class InstallerExit(enum.IntEnum):
    """Exit codes of the package installer process."""

    INTERNAL = 1
    INVALID_ARGS = 2
    INSTALL_FAILED_UNPACK = 3
    INSTALL_NOT_ENOUGH_TEMP_SPACE = 4
    INSTALL_NOT_ENOUGH_INSTALL_SPACE = 5
    INSTALL_TARGET_NOT_FOUND = 6
    INSTALL_BAD_PACKAGE = 7
    INSTALL_FAILED_VERIFY = 8
    INSTALL_FAILED_IPKG_INST = 9


class InstallResult(enum.Enum):
    """Outcome of asking the installer to start."""

    OK = "ok"
    FAIL = "fail"
    LOCKED = "locked"


_ERROR_TEXTS = {
    InstallerExit.INTERNAL: "FAILED_INTERNAL_ERROR",
    InstallerExit.INVALID_ARGS: "FAILED_INTERNAL_ERROR",
    InstallerExit.INSTALL_FAILED_UNPACK: "FAILED_CREATE_TMP",
    InstallerExit.INSTALL_NOT_ENOUGH_TEMP_SPACE: "FAILED_NOT_ENOUGH_TEMP_SPACE",
    InstallerExit.INSTALL_NOT_ENOUGH_INSTALL_SPACE: "FAILED_NOT_ENOUGH_INSTALL_SPACE",
    InstallerExit.INSTALL_TARGET_NOT_FOUND: "FAILED_PACKAGEFILE_NOT_FOUND",
    InstallerExit.INSTALL_BAD_PACKAGE: "FAILED_PACKAGEFILE_CORRUPT",
    InstallerExit.INSTALL_FAILED_VERIFY: "FAILED_VERIFY",
    InstallerExit.INSTALL_FAILED_IPKG_INST: "FAILED_IPKG_INSTALL",
}


def install_error_text(exit_code: int) -> str:
    """Return the error text reported for a failed installer exit code."""
    try:
        return _ERROR_TEXTS[InstallerExit(exit_code)]
    except ValueError:
        return "FAILED_INSTALL"


def get_storage_size(storage_path: str) -> tuple[int, int]:
    """Return ``(available, total)`` bytes of the file system holding ``storage_path``.

    Both are 0 when the file system cannot be queried.
    """
    try:
        usage = shutil.disk_usage(storage_path)
    except (OSError, ValueError):
        LOG.warning("statfs failed for %r", storage_path)
        return 0, 0
    return usage.free, usage.total


def _sync() -> None:
    sync = getattr(os, "sync", None)
    if sync is not None:
        sync()


def _bool_param(param: Any, key: str) -> bool:
    return isinstance(param, dict) and param.get(key) is True


def _str_param(param: Any, key: str) -> str:
    value = param.get(key) if isinstance(param, dict) else None
    return value if isinstance(value, str) else ""


class IpkInstallStep(Step):
    """Installs an ipk file through the package installer.

    ``installer(ipk_file, verify, allow_downgrade, allow_reinstall,
    install_base_path, on_progress, on_complete)`` starts the install and
    returns an ``InstallResult``. ``on_progress`` receives status lines and
    ``on_complete`` the installer's exit code.
    """

    def __init__(
        self,
        installer: Optional[Callable[..., InstallResult]],
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.installer = installer
        self.settings = settings if settings is not None else get_settings()

    def proceed(self, task: Task) -> bool:
        self.parent_task = task

        if not self.check_storage_size():
            task.set_error(
                ErrorKind.INSTALL,
                ErrorCode.INSTALL_DISKFULL,
                "There is no available space to install App",
            )
            task.proceed()
            return False

        param = task.param
        result = self.installer(
            _str_param(param, "ipkurl"),
            _bool_param(param, "verify"),
            _bool_param(param, "allowDowngrade"),
            task.allow_reinstall,
            task.install_base_path,
            self.on_install_progress,
            self.on_install_complete,
        )

        if result is InstallResult.FAIL:
            task.set_error(
                ErrorKind.INSTALL,
                ErrorCode.INSTALL_GENERAL,
                "unable to call ApplicationInstallerUtility",
            )
            return False
        if result is InstallResult.LOCKED:
            return True

        _sync()
        task.unpacked = True
        task.set_step(TaskStep.IPK_INSTALL_REQUESTED)
        return True

    def check_storage_size(self) -> bool:
        """False when the unpacked package would not fit on the install storage."""
        task = self.parent_task
        required = task.unpack_file_size
        available, _ = get_storage_size(task.install_base_path)
        if required > available:
            details = task.app_info.get("details") if isinstance(task.app_info, dict) else None
            caller = details.get("client") if isinstance(details, dict) else ""
            LOG.error(
                "not enough storage for %s (caller %s): available %d, required %d",
                task.app_id, caller, available, required,
            )
            return False
        return True

    def on_install_progress(self, text: str) -> None:
        """Follow a ``status: <stage> [<function>]`` line from the installer."""
        task = self.parent_task
        parts = re.split(r"[ \n]", text)
        if len(parts) <= 1:
            return
        status = parts[1]
        function = parts[2] if len(parts) > 2 else ""

        step = _PROGRESS_STEPS.get(status)
        if step is not None:
            task.set_step(step)
        if function and function in OPKG_INSTALL_VALIDATION_ERROR_FUNCTIONS:
            task.unpacked = False

    def on_install_complete(self, exit_code: int) -> None:
        task = self.parent_task
        if exit_code != 0:
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, install_error_text(exit_code))
            LOG.warning("ipk install failed for %s, status %d", task.app_id, exit_code)
        task.proceed()


class IpkParseStep(Step):
    """Extracts and checks the control data of an ipk before it is installed.

    ``extractor(ipk_file, dest_dir, callback)`` starts extracting the control
    file into ``dest_dir`` and returns whether it started; ``callback(ok)``
    reports the outcome. ``control_parser(path)`` returns an object with
    ``package``, ``version`` and ``installed_size``, or None if the file
    cannot be parsed.
    """

    def __init__(
        self,
        extractor: Callable[[str, str, Callable[[bool], None]], bool],
        control_parser: Callable[[str], Any],
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.extractor = extractor
        self.control_parser = control_parser
        self.settings = settings if settings is not None else get_settings()
        self.verify = False
        self.ipk_file = ""
        self.install_data_path = ""

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        self.verify = _bool_param(task.param, "verify")
        self.app_id = _str_param(task.param, "id")
        self.ipk_file = _str_param(task.param, "ipkurl")

        self.determine_install_path()

        try:
            os.makedirs(self.install_data_path, exist_ok=True)
        except OSError:
            task.set_error(
                ErrorKind.INSTALL, ErrorCode.INSTALL_GENERAL, "unable to create install temp directory"
            )
            task.proceed()
            return False

        if not self.extractor(self.ipk_file, self.install_data_path, self.on_package_extracted):
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_GENERAL, "failed to extract ipk file")
            task.proceed()
            return False
        return True

    def determine_install_path(self) -> None:
        """Apps go to internal storage only; pick its base by verification."""
        base = self.settings.install_path(self.verify)
        self.parent_task.install_base_path = base
        self.install_data_path = base + "/tmp/" + self.app_id
        LOG.debug("install base path %s", base)

    def on_package_extracted(self, result: bool) -> None:
        task = self.parent_task

        def fail(text: str) -> None:
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, text)
            task.proceed()

        if not result:
            fail("Failed to extract package")
            return

        control = self.control_parser(self.install_data_path + "/control")
        if control is None:
            fail("Failed to parse control")
            return

        LOG.info("package %s version %s (app %s)", control.package, control.version, self.app_id)

        if self.verify and self.app_id != control.package:
            fail("appId is wrong")
            return

        task.package_id = control.package

        installed_path = (
            task.install_base_path + self.settings.opkg_info_path + "/" + control.package + ".control"
        )
        installed = self.control_parser(installed_path)
        if installed is not None and control.version == installed.version:
            task.allow_reinstall = True

        unpack_size = control.installed_size or 0
        if unpack_size:
            task.has_installed_size_with_control_file = True
            if task.unpack_file_size == 0:
                task.unpack_file_size = unpack_size

        shutil.rmtree(self.install_data_path, ignore_errors=True)
        task.set_step(TaskStep.IPK_PARSE_COMPLETE)
        task.proceed()


def _dir_size(path: str) -> int:
    total = 0
    for root, _, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                pass
    return total


def _read_app_info(directory: str) -> Optional[dict]:
    try:
        with open(os.path.join(directory, "appinfo.json"), encoding="utf-8") as info:
            data = json.load(info)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _copy_into(sources: list, dest: str) -> bool:
    ok = bool(sources)
    for source in sources:
        try:
            shutil.copy2(source, dest)
        except OSError:
            ok = False
    return ok


class UnpackagedInstallStep(IpkInstallStep):
    """Installs an app given as a directory rather than an ipk file.

    ``pwa_path(url)`` maps the request's ``ipkurl`` to that directory; by
    default the url is used as the directory itself.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pwa_path: Optional[Callable[[str], str]] = None,
    ) -> None:
        super().__init__(None, settings)
        self.pwa_path = pwa_path if pwa_path is not None else (lambda url: url)

    def proceed(self, task: Task) -> bool:
        app_path = self.settings.install_application_path(True) + "/"
        self.parent_task = task
        source = self.pwa_path(_str_param(task.param, "ipkurl"))
        self.app_id = task.app_id
        app_dir = app_path + self.app_id
        task.unpack_file_size = _dir_size(source)

        is_update = os.path.exists(app_dir)

        if not self.check_storage_size():
            task.set_error(
                ErrorKind.INSTALL,
                ErrorCode.INSTALL_DISKFULL,
                "There is no available space to install App",
            )
            task.proceed()
            return False

        new_info = _read_app_info(source)
        if new_info is None:
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, "Failed to parse appinfo.json")
            task.proceed()
            return False

        if self.app_id != new_info.get("id"):
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, "appId is wrong")
            task.proceed()
            return False

        if is_update:
            installed_info = _read_app_info(app_dir)
            if installed_info is not None and new_info.get("version") == installed_info.get("version"):
                task.allow_reinstall = True
            shutil.rmtree(app_dir, ignore_errors=True)

        try:
            os.makedirs(app_dir, exist_ok=True)
        except OSError:
            error_message = "mkdir " + app_dir + " error"
        else:
            icons = sorted(glob.glob(os.path.join(glob.escape(source), "icon*")))
            if not _copy_into(icons, app_dir):
                error_message = "copy icons error"
            elif not _copy_into([os.path.join(source, "appinfo.json")], app_dir):
                error_message = "copy appinfo.json error"
            else:
                _sync()
                task.unpacked = True
                task.set_step(TaskStep.IPK_INSTALL_COMPLETE)
                if is_update:
                    task.origin_app_info = {}
                task.proceed()
                return True

        task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_GENERAL, error_message)
        return False