"""Install locations, system bus file locations and feature flags of the installer."""

from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass, field

LOG = logging.getLogger(__name__)

# Base directories of the target system layout.
LOCALSTATEDIR = "/var"
CRYPTOFSDIR = "/media/cryptofs"
SYSCONFDIR = "/etc/palm"
BINDIR = "/usr/bin"
DATADIR = "/usr/share"
SYSBUS_DYNDATADIR = "/var/luna-service2"
SYSBUS_DEVDATADIR = "/var/luna-service2-dev"

# Security labelling tools and locations.
CHSMACK_EXEC = "chsmack"
SMACKCTL_EXEC = "smackctl"
SMACK_RULES_GEN_EXEC = "/usr/share/smack/smack_rules_gen"
SMACK_RULES_DIR = "/etc/smack/accesses.d/"
SMACK_EXEC_PREFIX = "webOS::App::"
SMACK_SERVICE_PREFIX = "webOS::Service::"
SMACK_RULES_OVERLAY = "/var/smack/accesses.d/"

APPS_PREFIX = "/apps"
DEV_MODE_PATH = "/var/luna/preferences/devmode_enabled"
JAILER_PATH = BINDIR + "/jailer"
OPKG_CONF_PATH = SYSCONFDIR + "/appinstalld/opkg.conf"

_OPKG_FIELDS = {
    "info_dir": "opkg_info_path",
    "status_file": "opkg_status_file_path",
    "lock_file": "opkg_lock_file_path",
}


def _fixed_sysbus_dir(verified: bool, name: str) -> str:
    """Return a directory under the fixed system bus data locations."""
    base = SYSBUS_DYNDATADIR if verified else SYSBUS_DEVDATADIR
    return f"{base}/{name}"


@dataclass
class Settings:
    """Paths and flags the installer steps work with."""

    installer_data_path: str = LOCALSTATEDIR + "/data/com.webos.appInstallService"
    user_install_path: str = CRYPTOFSDIR
    system_install_path: str = CRYPTOFSDIR
    developer_install_path: str = "/media/developer"
    alias_persistent_path: str = "/media/alias"
    alias_temp_path: str = "/tmp/alias"
    application_path: str = "/usr/palm/applications"
    package_path: str = "/usr/palm/packages"
    service_path: str = "/usr/palm/services"
    opkg_conf_path: str = field(default_factory=lambda: OPKG_CONF_PATH)
    luna_files_dir: str = LOCALSTATEDIR + "/ls2"
    developer_luna_files_dir: str = LOCALSTATEDIR + "/ls2-dev"
    jsservice_path: str = BINDIR + "/run-js-service"
    jailer_path: str = field(default_factory=lambda: JAILER_PATH)
    role_template_path_ndk: str = DATADIR + "/rolegen/templates/NDK"
    role_template_path_web_app: str = DATADIR + "/rolegen/templates/WebApp.json"
    role_template_path_js_service: str = DATADIR + "/rolegen/templates/JSService.json"
    role_template_path_native_app: str = DATADIR + "/rolegen/templates/NativeApp.json"
    role_template_path_native_service: str = DATADIR + "/rolegen/templates/NativeService.json"
    conf_path: str = SYSCONFDIR + "/appinstalld-conf.json"
    schema_path: str = SYSCONFDIR + "/schemas/appinstalld/"
    dev_mode_path: str = field(default_factory=lambda: DEV_MODE_PATH)
    dev_mode: bool = False
    jail_mode: bool = False
    smack_mode: bool = False
    locale_path: str = "/var/luna/preferences/localeInfo"
    signage_contents_path: str = "/mnt/lg/appstore/scap/contents/"
    support_ui: bool = True
    support_update_service: bool = True
    timeout: int = 3 * 60 * 1000
    minimum_app_size: int = 100 * 1024
    sysbus_data_dir: str = SYSBUS_DYNDATADIR
    sysbus_dev_data_dir: str = SYSBUS_DEVDATADIR
    opkg_info_path: str = ""
    opkg_status_file_path: str = ""
    opkg_lock_file_path: str = ""

    @classmethod
    def from_system(cls) -> "Settings":
        """Build settings, detecting modes from the file system and reading opkg.conf."""
        settings = cls()
        settings.dev_mode = os.path.exists(settings.dev_mode_path)
        settings.jail_mode = os.path.exists(settings.jailer_path)
        settings.smack_mode = os.path.exists(SMACK_RULES_GEN_EXEC)
        if not settings.parse_opkg_configure():
            LOG.warning("opkg conf parse fail")
        return settings

    @property
    def application_install_path(self) -> str:
        return APPS_PREFIX + self.application_path

    @property
    def package_install_path(self) -> str:
        return APPS_PREFIX + self.package_path

    @property
    def service_install_path(self) -> str:
        return APPS_PREFIX + self.service_path

    def parse_opkg_configure(self) -> bool:
        """Read info_dir, status_file and lock_file from opkg.conf; False if unreadable."""
        try:
            with open(self.opkg_conf_path, encoding="utf-8", errors="replace", newline="") as conf:
                lines = conf.read().split("\n")
        except OSError:
            return False

        for line in lines:
            parts = line.split(" ", 2)
            if len(parts) < 3 or not parts[2]:
                continue
            _, key, value = parts
            attribute = _OPKG_FIELDS.get(key)
            if attribute is not None:
                setattr(self, attribute, APPS_PREFIX + value)
        return True

    def install_path(self, verified: bool) -> str:
        return self.user_install_path if verified else self.developer_install_path

    def alias_install_path(self, persistence: bool) -> str:
        return self.alias_persistent_path if persistence else self.alias_temp_path

    def install_application_path(self, verified: bool) -> str:
        return self.install_path(verified) + self.application_install_path

    def install_package_path(self, verified: bool) -> str:
        return self.install_path(verified) + self.package_install_path

    def install_service_path(self, verified: bool) -> str:
        return self.install_path(verified) + self.service_install_path

    def luna_files_path(self, verified: bool) -> str:
        return self.luna_files_dir if verified else self.developer_luna_files_dir

    def luna_role_files_path(self, verified: bool, pub: bool) -> str:
        return self.luna_files_path(verified) + "/roles" + ("/pub" if pub else "/prv")

    def luna_service_files_path(self, verified: bool, pub: bool) -> str:
        return self.luna_files_path(verified) + "/services" + ("/pub" if pub else "/prv")

    def _sysbus_dir(self, verified: bool) -> str:
        return self.sysbus_data_dir if verified else self.sysbus_dev_data_dir

    def luna_unified_roles_dir(self, verified: bool) -> str:
        return self._sysbus_dir(verified) + "/roles.d"

    def luna_unified_permissions_dir(self, verified: bool, full: bool) -> str:
        if full:
            return self._sysbus_dir(verified) + "/client-permissions.d"
        return _fixed_sysbus_dir(verified, "client-permissions.d")

    def luna_unified_services_dir(self, verified: bool) -> str:
        return self._sysbus_dir(verified) + "/services.d"

    def luna_unified_api_permissions_dir(self, verified: bool) -> str:
        return self._sysbus_dir(verified) + "/api-permissions.d"

    def luna_unified_groups_dir(self, verified: bool) -> str:
        return _fixed_sysbus_dir(verified, "groups.d")

    def luna_unified_manifests_dir(self, verified: bool, full: bool) -> str:
        if full:
            return self._sysbus_dir(verified) + "/manifests.d"
        return _fixed_sysbus_dir(verified, "manifests.d")


def luna_unified_json_file_name(app_id: str, suffix: str) -> str:
    """Return the file name ``<app_id>.<suffix>.json``."""
    return f"{app_id}.{suffix}.json"


def luna_unified_app_json_file_name(app_id: str) -> str:
    return luna_unified_json_file_name(app_id, "app")


def luna_unified_service_json_file_name(app_id: str) -> str:
    return luna_unified_json_file_name(app_id, "service")


def luna_unified_api_json_file_name(app_id: str) -> str:
    return luna_unified_json_file_name(app_id, "api")


def luna_unified_group_json_file_name(app_id: str) -> str:
    return luna_unified_json_file_name(app_id, "group")


def group_name_for_service(service_id: str) -> str:
    """Return the security group name of a service."""
    return service_id + ".group"


@functools.lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return the process-wide settings, built from the system on first use."""
    return Settings.from_system()