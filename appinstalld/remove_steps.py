"""Steps that remove an installed package and the data it left behind."""

from __future__ import annotations

import logging
import os
import shutil
from typing import Callable, Iterable, Optional, Sequence

from appinstalld.jvalue_util import get_value
from appinstalld.settings import Settings, get_settings
from appinstalld.step import (
    INSTALL_SERVICE_ID,
    ErrorCode,
    ErrorKind,
    Step,
    Task,
    TaskStep,
)

LOG = logging.getLogger(__name__)


def _package_path(settings: Settings, verified: bool, app_id: str) -> str:
    return settings.install_path(verified) + settings.package_install_path + "/" + app_id


def data_dirs(settings: Settings, app_id: str, services: Iterable[str], verify: bool) -> list:
    """Return the application and service directories to delete for ``app_id``.

    Verified locations are included only when ``verify`` is set; developer
    locations always are.
    """
    dirs = []
    if verify:
        dirs.append(settings.install_application_path(True) + "/" + app_id)
    dirs.append(settings.install_application_path(False) + "/" + app_id)
    for service in services:
        if verify:
            dirs.append(settings.install_service_path(True) + "/" + service)
        dirs.append(settings.install_service_path(False) + "/" + service)
    return dirs


def _remove_path(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path, ignore_errors=True)
    elif os.path.lexists(path):
        try:
            os.remove(path)
        except OSError:
            LOG.warning("cannot remove %s", path)


class IpkRemoveStep(Step):
    """Asks the package manager to remove a package and records its services.

    ``run_chain(items, callback)`` runs the bus calls in ``items`` and passes
    the final result to ``callback``. ``read_services(package_path)`` returns
    the service names of the package installed there, or None if the package
    information cannot be read.
    """

    def __init__(
        self,
        run_chain: Callable[[list, Callable[[dict], None]], bool],
        read_services: Callable[[str], Optional[Sequence[str]]],
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.run_chain = run_chain
        self.read_services = read_services
        self.settings = settings if settings is not None else get_settings()

    def _collect_services(self, task: Task, verified: bool) -> None:
        services = self.read_services(_package_path(self.settings, verified, task.app_id))
        if services:
            task.services.extend(services)

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        verify = task.verify

        items = [{"name": "RemoveIpk", "id": task.app_id, "verify": verify, "subscriber": ""}]

        self._collect_services(task, verify)
        if verify and not task.services:
            self._collect_services(task, False)

        task.set_step(TaskStep.IPK_REMOVE_REQUESTED)
        self.run_chain(items, self.on_ipk_removed)
        return True

    def on_ipk_removed(self, result: dict) -> bool:
        task = self.parent_task
        return_value = isinstance(result, dict) and result.get("returnValue") is True
        removed = get_value(result, "removed", kind=int) or 0
        failed = get_value(result, "failed", kind=int) or 0
        if removed == 0 or failed > 0:
            return_value = False

        if return_value:
            if task.sender == INSTALL_SERVICE_ID:
                # Removal after a failed install keeps the app data.
                LOG.debug("internal remove of %s, keeping app data", task.app_id)
                task.set_step(TaskStep.REMOVE_COMPLETE)
            else:
                task.set_step(TaskStep.IPK_REMOVE_COMPLETE)
        else:
            error_text = get_value(result, "errorText", kind=str) or "FAILED_REMOVE"
            task.set_error(ErrorKind.REMOVE, ErrorCode.REMOVE_REMOVE, error_text)

        task.proceed()
        return True


class DataRemoveStep(Step):
    """Removes the database entries and data directories of an app and its services.

    ``run_chain(items, callback)`` runs the bus calls. ``sessions`` is None
    when sessions are not in use; otherwise one call is made per session.
    """

    def __init__(
        self,
        run_chain: Callable[[list, Callable[[dict], None]], bool],
        sessions: Optional[Sequence[str]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.run_chain = run_chain
        self.sessions = sessions
        self.settings = settings if settings is not None else get_settings()

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        owners = [task.app_id, *task.services]
        session_ids = [None] if self.sessions is None else list(self.sessions)
        items = [
            {
                "name": "RemoveDb",
                "caller": INSTALL_SERVICE_ID,
                "session_id": session_id,
                "owners": list(owners),
            }
            for session_id in session_ids
        ]
        task.set_step(TaskStep.DATA_REMOVE_REQUESTED)
        return self.run_chain(items, self.on_data_removed)

    def on_data_removed(self, result: dict) -> bool:
        task = self.parent_task
        for path in data_dirs(self.settings, task.app_id, task.services, task.verify):
            if os.path.lexists(path):
                _remove_path(path)
        task.set_step(TaskStep.DATA_REMOVE_COMPLETE)
        task.proceed()
        return True