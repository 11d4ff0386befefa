"""Which action follows which status, read from the installer configuration."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from appinstalld.settings import Settings, get_settings
from appinstalld.step import TaskStep

LOG = logging.getLogger(__name__)


def _entries(steps: Any):
    if not isinstance(steps, list):
        return
    for entry in steps:
        if not isinstance(entry, dict):
            continue
        status, action = entry.get("status"), entry.get("action")
        if isinstance(status, str) and isinstance(action, str):
            yield status, action


def _insert(mapping: dict, status: str, action: str) -> None:
    try:
        key, value = TaskStep(status), TaskStep(action)
    except ValueError:
        LOG.warning("unknown step in mapping %r -> %r", status, action)
        return
    mapping.setdefault(key, value)


def parse_step_config(root: Any, jail_mode: bool, smack_mode: bool) -> tuple[dict, dict]:
    """Return the install and remove step maps described by ``root``.

    Steps for jail and SMACK handling are dropped when the feature is off;
    the status that led to a dropped step then leads to the step after it.
    """
    install_steps: dict = {}
    remove_steps: dict = {}
    if not isinstance(root, dict):
        return install_steps, remove_steps

    keep_status = ""

    for status, action in _entries(root.get("installSteps")):
        if not smack_mode:
            if action == "InstallSmackNeeded":
                keep_status = status
                continue
            if status == "InstallSmackComplete":
                status = keep_status
        _insert(install_steps, status, action)

    for status, action in _entries(root.get("removeSteps")):
        if not jail_mode:
            if action == "RemoveJailNeeded":
                keep_status = status
                continue
            if status == "RemoveJailComplete":
                status = keep_status
        if not smack_mode:
            if action == "RemoveSmackNeeded":
                keep_status = status
                continue
            if status == "RemoveSmackComplete":
                status = keep_status
        _insert(remove_steps, status, action)

    return install_steps, remove_steps


@dataclass
class StepSettings:
    """Maps from a task's current status to the action it takes next."""

    install_steps: dict = field(default_factory=dict)
    remove_steps: dict = field(default_factory=dict)

    def load_step_configure(self, settings: Optional[Settings] = None) -> bool:
        """Read the step maps from the configuration file; False if it cannot be read."""
        settings = settings or get_settings()
        try:
            with open(settings.conf_path, encoding="utf-8") as conf:
                root = json.load(conf)
        except (OSError, ValueError):
            LOG.warning("failed to parse %s", settings.conf_path)
            return False
        if root is None:
            LOG.warning("failed to parse %s", settings.conf_path)
            return False

        install_steps, remove_steps = parse_step_config(
            root, settings.jail_mode, settings.smack_mode
        )
        for status, action in install_steps.items():
            self.install_steps.setdefault(status, action)
        for status, action in remove_steps.items():
            self.remove_steps.setdefault(status, action)
        return True