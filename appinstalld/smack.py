"""Security labels and access rules for installed apps and their services."""

from __future__ import annotations

import enum
import logging
import os
import subprocess
from typing import Callable, Iterable, Optional, Sequence, Tuple

from appinstalld.settings import (
    CHSMACK_EXEC,
    SMACK_EXEC_PREFIX,
    SMACK_RULES_DIR,
    SMACK_RULES_GEN_EXEC,
    SMACK_RULES_OVERLAY,
    SMACK_SERVICE_PREFIX,
    SMACKCTL_EXEC,
    Settings,
    get_settings,
)
from appinstalld.step import ErrorCode, ErrorKind, Step, Task, TaskStep

LOG = logging.getLogger(__name__)

MOUNT_EXEC = "mount"

# A service entry: (directory name, service id, service type).
ServiceEntry = Tuple[str, str, str]
ServiceReader = Callable[[str, str], Optional[Iterable[ServiceEntry]]]
Runner = Callable[[Sequence[str]], None]


class AppKind(enum.Enum):
    """What kind of program a label and rule set is made for."""

    WEB = "web"
    QML = "qml"
    NATIVE = "native"
    SERVICE = "service"
    STUB = "stub"
    OTHER = "other"


_RULES_GEN_FLAGS = {
    AppKind.WEB: "-bw",
    AppKind.QML: "-bq",
    AppKind.NATIVE: "-bn",
    AppKind.SERVICE: "-bs",
}


class CommandFailed(Exception):
    """A helper program could not be started or exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int] = None, reason: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.reason = reason
        detail = reason if reason else f"exit status {returncode}"
        super().__init__(f"{' '.join(self.argv)}: {detail}")


def chsmack_command(label: str, path: str, native: bool) -> list:
    """Return the command that labels ``path`` recursively with ``label``."""
    argv = [CHSMACK_EXEC, "-r", "-t", "-a", label]
    if native:
        argv += ["-e", label]
    argv.append(path)
    return argv


def rules_gen_command(target_id: str, kind: AppKind, output: str) -> list:
    """Return the command that writes the access rules of ``target_id`` to ``output``."""
    argv = [SMACK_RULES_GEN_EXEC]
    flag = _RULES_GEN_FLAGS.get(kind)
    if flag is not None:
        argv.append(flag)
    argv += [target_id, "-o", output]
    return argv


def smackctl_command() -> list:
    """Return the command that loads the current rule set."""
    return [SMACKCTL_EXEC, "apply"]


def remount_command() -> list:
    """Return the command that remounts the rules directory."""
    return [MOUNT_EXEC, "-o", "remount", SMACK_RULES_DIR]


def run_command(argv: Sequence[str]) -> None:
    """Run a program found on the search path and wait for it.

    Raises CommandFailed if it cannot be started or exits non-zero.
    """
    argv = list(argv)
    LOG.debug("executing %s", " ".join(argv))
    try:
        completed = subprocess.run(argv, check=False)
    except OSError as error:
        LOG.error("failed to execute %s: %s", argv[0], error)
        raise CommandFailed(argv, None, str(error)) from error
    if completed.returncode != 0:
        LOG.debug("non-zero exit code %d from %s", completed.returncode, argv[0])
        raise CommandFailed(argv, completed.returncode)


def _fail(task: Task, text: str) -> bool:
    task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_SMACK, text)
    task.proceed()
    return False


class InstallSmackStep(Step):
    """Labels an installed app and its services and loads their access rules.

    ``app_reader(application_path)`` returns the AppKind of the app installed
    there. ``service_reader(package_path, services_dir)`` returns the
    ``(name, service_id, service_type)`` entries of the package's services,
    or None when the package information cannot be read.
    """

    def __init__(
        self,
        app_reader: Callable[[str], AppKind],
        service_reader: ServiceReader,
        settings: Optional[Settings] = None,
        runner: Optional[Runner] = None,
    ) -> None:
        super().__init__()
        self.app_reader = app_reader
        self.service_reader = service_reader
        self.settings = settings if settings is not None else get_settings()
        self.runner = runner if runner is not None else run_command
        self.rules_dir = SMACK_RULES_DIR

    def _make_rules_dir(self) -> None:
        try:
            os.makedirs(self.rules_dir, mode=0o755, exist_ok=True)
        except OSError:
            LOG.debug("cannot create %s", self.rules_dir)

    def _label(self, label: str, path: str, target_id: str, kind: AppKind, native: bool) -> Optional[str]:
        """Run the three commands for one target; return an error text on failure."""
        try:
            self.runner(chsmack_command(label, path, native))
        except CommandFailed as error:
            LOG.error("Failed to execute chsmack: %s", error)
            return "unable to execute chsmack command"

        self._make_rules_dir()
        try:
            self.runner(rules_gen_command(target_id, kind, self.rules_dir + target_id))
        except CommandFailed as error:
            LOG.error("Failed to execute smack_rule_gen: %s", error)
            return "unable to execute smack_rules_gen command"

        try:
            self.runner(smackctl_command())
        except CommandFailed as error:
            LOG.error("Failed to execute smackctl: %s", error)
            return "unable to execute smackctl command"
        return None

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        package_id = task.package_id
        base = task.install_base_path
        application_path = base + self.settings.application_install_path + "/" + package_id
        package_path = base + self.settings.package_install_path + "/" + package_id

        kind = self.app_reader(application_path)
        if kind is AppKind.STUB:
            task.set_step(TaskStep.INSTALL_SMACK_COMPLETE)
            task.proceed()
            return True

        error = self._label(
            SMACK_EXEC_PREFIX + package_id,
            application_path,
            package_id,
            kind,
            kind is AppKind.NATIVE,
        )
        if error is not None:
            return _fail(task, error)

        services_dir = base + self.settings.service_install_path
        for name, service_id, service_type in self.service_reader(package_path, services_dir) or ():
            if service_type == "native":
                continue
            error = self._label(
                SMACK_SERVICE_PREFIX + service_id,
                services_dir + "/" + name,
                service_id,
                AppKind.SERVICE,
                False,
            )
            if error is not None:
                return _fail(task, error)

        task.set_step(TaskStep.INSTALL_SMACK_COMPLETE)
        task.proceed()
        return True


class RemoveSmackStep(Step):
    """Deletes the access rules of an app and its services and reloads the rule set.

    Rules live in ``overlay_dir`` when the app's rule file is found there,
    otherwise in ``rules_dir``. ``service_reader`` is as for InstallSmackStep.
    """

    def __init__(
        self,
        service_reader: ServiceReader,
        settings: Optional[Settings] = None,
        runner: Optional[Runner] = None,
        rules_dir: str = SMACK_RULES_DIR,
        overlay_dir: str = SMACK_RULES_OVERLAY,
    ) -> None:
        super().__init__()
        self.service_reader = service_reader
        self.settings = settings if settings is not None else get_settings()
        self.runner = runner if runner is not None else run_command
        self.rules_dir = rules_dir
        self.overlay_dir = overlay_dir

    def _service_ids(self, app_id: str, verified: bool) -> list:
        package_path = (
            self.settings.install_path(verified) + self.settings.package_install_path + "/" + app_id
        )
        services_dir = self.settings.install_service_path(verified)
        return [service_id for _, service_id, _ in self.service_reader(package_path, services_dir) or ()]

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        app_id = task.app_id

        use_overlay = os.path.exists(self.overlay_dir + app_id)
        prefix = self.overlay_dir if use_overlay else self.rules_dir

        verify = task.verify
        service_ids = self._service_ids(app_id, verify)
        if verify and not service_ids:
            service_ids = self._service_ids(app_id, False)

        for rule_path in [prefix + app_id] + [prefix + sid for sid in service_ids]:
            if os.path.exists(rule_path):
                try:
                    os.remove(rule_path)
                except OSError:
                    LOG.warning("Cannot remove SMACK rules %s of %s", rule_path, app_id)

        if use_overlay:
            try:
                self.runner(remount_command())
            except CommandFailed as error:
                LOG.error("Failed to execute mount: %s", error)
                return _fail(task, "unable to execute mount command")

        try:
            self.runner(smackctl_command())
        except CommandFailed as error:
            LOG.error("Failed to execute smackctl: %s", error)
            return _fail(task, "unable to execute smackctl command")

        task.set_step(TaskStep.REMOVE_SMACK_COMPLETE)
        task.proceed()
        return True