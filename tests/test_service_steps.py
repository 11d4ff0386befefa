import pytest

from appinstalld.service_steps import (
    ServiceInstallStep,
    ServiceUninstallStep,
    install_path_info,
    uninstall_path_infos,
)
from appinstalld.settings import Settings
from appinstalld.step import ErrorCode, ErrorKind, Task, TaskStep


class InstallerRecorder:
    def __init__(self, started=True):
        self.started = started
        self.args = None

    def __call__(self, *args):
        self.args = args
        return self.started

    @property
    def callback(self):
        return [arg for arg in self.args if callable(arg)][0]


@pytest.fixture
def settings():
    return Settings()


def make_task(verify=True, **extra):
    param = {"verify": verify}
    param.update(extra)
    return Task(param=param, app_id="com.example.app", package_id="com.example.app",
                install_base_path="/mnt/ext")


def test_internal_path_info_uses_system_locations(settings):
    info = install_path_info(settings, True, False, "/mnt/ext")
    assert info.root == ""
    assert info.verified is True
    assert info.legacy_roles == settings.luna_files_path(True) + "/roles"
    assert info.legacy_services == settings.luna_files_path(True) + "/services"
    assert info.roled == settings.luna_unified_roles_dir(True)
    assert info.permissiond == settings.luna_unified_permissions_dir(True, True)
    assert info.manifestsd == settings.luna_unified_manifests_dir(True, True)


def test_external_verified_path_info_is_prefixed(settings):
    info = install_path_info(settings, True, True, "/mnt/ext")
    assert info.root == "/mnt/ext"
    assert info.roled == "/mnt/ext" + settings.luna_unified_roles_dir(True)
    assert info.legacy_roles == info.roled
    assert info.permissiond == "/mnt/ext" + settings.luna_unified_permissions_dir(True, False)
    assert info.manifestsd == "/mnt/ext" + settings.luna_unified_manifests_dir(True, False)
    assert info.groupd == "/mnt/ext" + settings.luna_unified_groups_dir(True)


def test_external_unverified_matches_internal(settings):
    assert install_path_info(settings, False, True, "/mnt/ext") == install_path_info(
        settings, False, False, "/mnt/ext"
    )


def test_uninstall_path_infos_verified_lists_both(settings):
    infos = uninstall_path_infos(settings, True)
    assert [info.verified for info in infos] == [True, False]
    assert infos[1] == install_path_info(settings, False, False, "")


def test_uninstall_path_infos_unverified_lists_developer_only(settings):
    infos = uninstall_path_infos(settings, False)
    assert len(infos) == 1
    assert infos[0].serviced == settings.luna_unified_services_dir(False)


def test_service_install_proceed_requests_install(settings):
    installer = InstallerRecorder()
    task = make_task()
    assert ServiceInstallStep(installer, settings).proceed(task) is True
    package_id, base, path_info, _, is_update = installer.args
    assert package_id == "com.example.app"
    assert base == "/mnt/ext"
    assert path_info == install_path_info(settings, True, False, "/mnt/ext")
    assert is_update is False
    assert task.step is TaskStep.SERVICE_INSTALL_REQUESTED


def test_service_install_external_target(settings):
    installer = InstallerRecorder()
    task = make_task(target={"deviceId": "USB_STORAGE"})
    ServiceInstallStep(installer, settings).proceed(task)
    assert installer.args[2].root == "/mnt/ext"


def test_service_install_not_started(settings):
    task = make_task()
    assert ServiceInstallStep(InstallerRecorder(started=False), settings).proceed(task) is True
    assert task.error_code is ErrorCode.INSTALL_GENERAL
    assert task.error_text == "failed to install service"
    assert task.proceed_count == 0
    assert task.step is None


def test_service_install_complete_success(settings):
    installer = InstallerRecorder()
    task = make_task()
    ServiceInstallStep(installer, settings).proceed(task)
    installer.callback(True, "")
    assert task.step is TaskStep.SERVICE_INSTALL_COMPLETE
    assert task.proceed_count == 1


def test_service_install_complete_failure(settings):
    installer = InstallerRecorder()
    task = make_task()
    ServiceInstallStep(installer, settings).proceed(task)
    installer.callback(False, "role file invalid")
    assert task.error_kind is ErrorKind.INSTALL
    assert task.error_code is ErrorCode.INSTALL_INSTALL
    assert task.error_text == "role file invalid"
    assert task.proceed_count == 1


def test_service_uninstall_passes_path_infos(settings):
    installer = InstallerRecorder()
    task = make_task(verify=False)
    assert ServiceUninstallStep(installer, settings).proceed(task) is True
    assert installer.args[0] == "com.example.app"
    assert installer.args[1] == uninstall_path_infos(settings, False)


def test_service_uninstall_not_started(settings):
    task = make_task()
    assert ServiceUninstallStep(InstallerRecorder(started=False), settings).proceed(task) is False
    assert task.error_kind is ErrorKind.REMOVE
    assert task.error_code is ErrorCode.REMOVE_GENERAL
    assert task.error_text == "failed to remove service file"


@pytest.mark.parametrize("success", [True, False])
def test_service_uninstall_complete_always_advances(settings, success):
    installer = InstallerRecorder()
    task = make_task()
    ServiceUninstallStep(installer, settings).proceed(task)
    installer.callback(success, "line\nbreak")
    assert task.step is TaskStep.SERVICE_UNINSTALL_COMPLETE
    assert task.failed is False
    assert task.proceed_count == 1