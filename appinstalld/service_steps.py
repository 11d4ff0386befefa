"""Steps that install and uninstall the system bus files of an app's services."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Optional

from appinstalld.settings import Settings, get_settings
from appinstalld.step import ErrorCode, ErrorKind, PathInfo, Step, Task, TaskStep

LOG = logging.getLogger(__name__)

_INTERNAL_STORAGE = "INTERNAL_STORAGE"


def _sync() -> None:
    sync = getattr(os, "sync", None)
    if sync is not None:
        sync()


def install_path_info(settings: Settings, verify: bool, external: bool, base_path: str) -> PathInfo:
    """Return where service files go when installing.

    Verified installs to external storage put every directory under
    ``base_path``; all others use the system locations.
    """
    if external and verify:
        return PathInfo(
            verified=verify,
            root=base_path,
            legacy_roles=base_path + settings.luna_unified_roles_dir(verify),
            legacy_services=base_path + settings.luna_unified_services_dir(verify),
            roled=base_path + settings.luna_unified_roles_dir(verify),
            serviced=base_path + settings.luna_unified_services_dir(verify),
            permissiond=base_path + settings.luna_unified_permissions_dir(verify, False),
            api_permissiond=base_path + settings.luna_unified_api_permissions_dir(verify),
            groupd=base_path + settings.luna_unified_groups_dir(verify),
            manifestsd=base_path + settings.luna_unified_manifests_dir(verify, False),
        )
    return _internal_path_info(settings, verify)


def _internal_path_info(settings: Settings, verify: bool) -> PathInfo:
    luna_files = settings.luna_files_path(verify)
    return PathInfo(
        verified=verify,
        root="",
        legacy_roles=luna_files + "/roles",
        legacy_services=luna_files + "/services",
        roled=settings.luna_unified_roles_dir(verify),
        serviced=settings.luna_unified_services_dir(verify),
        permissiond=settings.luna_unified_permissions_dir(verify, True),
        api_permissiond=settings.luna_unified_api_permissions_dir(verify),
        groupd=settings.luna_unified_groups_dir(verify),
        manifestsd=settings.luna_unified_manifests_dir(verify, True),
    )


def uninstall_path_infos(settings: Settings, verify: bool) -> list:
    """Return the locations to clean: verified ones first if ``verify``, then developer ones."""
    infos = []
    if verify:
        infos.append(_internal_path_info(settings, True))
    infos.append(_internal_path_info(settings, False))
    return infos


def _device_id(target: Any) -> str:
    value = target.get("deviceId") if isinstance(target, dict) else None
    return value if isinstance(value, str) else ""


class ServiceInstallStep(Step):
    """Installs the bus configuration of the services in a package.

    ``service_installer(package_id, install_base_path, path_info, callback,
    is_update)`` starts the work and returns whether it started;
    ``callback(success, error_text)`` reports the outcome.
    """

    def __init__(
        self,
        service_installer: Callable[..., bool],
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.service_installer = service_installer
        self.settings = settings if settings is not None else get_settings()

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        verify = task.verify
        target = task.param.get("target") if isinstance(task.param, dict) else None
        if target is None:
            target = {"deviceId": _INTERNAL_STORAGE}
        external = _device_id(target) != _INTERNAL_STORAGE

        path_info = install_path_info(self.settings, verify, external, task.install_base_path)
        LOG.debug("service install paths: %s", path_info)

        if not self.service_installer(
            task.package_id,
            task.install_base_path,
            path_info,
            self.on_install_service_complete,
            task.update,
        ):
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_GENERAL, "failed to install service")
            return True

        _sync()
        task.set_step(TaskStep.SERVICE_INSTALL_REQUESTED)
        return True

    def on_install_service_complete(self, success: bool, error_text: str) -> None:
        task = self.parent_task
        if success:
            task.set_step(TaskStep.SERVICE_INSTALL_COMPLETE)
        else:
            task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_INSTALL, error_text)
        task.proceed()


class ServiceUninstallStep(Step):
    """Removes the bus configuration of an app's services.

    ``service_installer(app_id, path_infos, callback)`` starts the removal
    and returns whether it started; ``callback(success, error_text)``
    reports the outcome.
    """

    def __init__(
        self,
        service_installer: Callable[..., bool],
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__()
        self.service_installer = service_installer
        self.settings = settings if settings is not None else get_settings()

    def proceed(self, task: Task) -> bool:
        self.parent_task = task
        path_infos = uninstall_path_infos(self.settings, task.verify)
        for path_info in path_infos:
            LOG.debug("service uninstall paths: %s", path_info)

        if not self.service_installer(task.app_id, path_infos, self.on_uninstall_service_complete):
            task.set_error(ErrorKind.REMOVE, ErrorCode.REMOVE_GENERAL, "failed to remove service file")
            return False
        return True

    def on_uninstall_service_complete(self, success: bool, error_text: str) -> None:
        task = self.parent_task
        if not success:
            escaped = error_text.encode("unicode_escape").decode("ascii")
            LOG.warning("uninstall service failed for %s: %s", task.app_id, escaped)
        task.set_step(TaskStep.SERVICE_UNINSTALL_COMPLETE)
        task.proceed()