import json

from appinstalld.settings import Settings
from appinstalld.step import TaskStep
from appinstalld.step_settings import StepSettings, parse_step_config

INSTALL = [
    {"status": "IpkInstallComplete", "action": "InstallSmackNeeded"},
    {"status": "InstallSmackComplete", "action": "ServiceInstallNeeded"},
]
REMOVE = [
    {"status": "RemoveStarted", "action": "RemoveJailNeeded"},
    {"status": "RemoveJailComplete", "action": "RemoveSmackNeeded"},
    {"status": "RemoveSmackComplete", "action": "AppCloseNeeded"},
]
ROOT = {"installSteps": INSTALL, "removeSteps": REMOVE}


def test_all_features_on_keeps_every_step():
    install, remove = parse_step_config(ROOT, True, True)
    assert install == {
        TaskStep.IPK_INSTALL_COMPLETE: TaskStep.INSTALL_SMACK_NEEDED,
        TaskStep.INSTALL_SMACK_COMPLETE: TaskStep.SERVICE_INSTALL_NEEDED,
    }
    assert len(remove) == len(REMOVE)
    assert remove[TaskStep.REMOVE_STARTED] is TaskStep.REMOVE_JAIL_NEEDED


def test_smack_off_skips_install_smack():
    install, _ = parse_step_config(ROOT, True, False)
    assert install == {TaskStep.IPK_INSTALL_COMPLETE: TaskStep.SERVICE_INSTALL_NEEDED}


def test_jail_and_smack_off_collapse_remove_chain():
    _, remove = parse_step_config(ROOT, False, False)
    assert remove == {TaskStep.REMOVE_STARTED: TaskStep.APP_CLOSE_NEEDED}


def test_jail_off_only():
    _, remove = parse_step_config(ROOT, False, True)
    assert remove == {
        TaskStep.REMOVE_STARTED: TaskStep.REMOVE_SMACK_NEEDED,
        TaskStep.REMOVE_SMACK_COMPLETE: TaskStep.APP_CLOSE_NEEDED,
    }


def test_incomplete_entries_and_first_mapping_wins():
    root = {
        "installSteps": [
            {"status": "IpkParseComplete"},
            {"status": "IpkParseComplete", "action": 3},
            {"status": "IpkParseComplete", "action": "GetIpkInfoNeeded"},
            {"status": "IpkParseComplete", "action": "AppCloseNeeded"},
        ]
    }
    install, remove = parse_step_config(root, True, True)
    assert install == {TaskStep.IPK_PARSE_COMPLETE: TaskStep.GET_IPK_INFO_NEEDED}
    assert remove == {}


def test_non_object_root_gives_empty_maps():
    assert parse_step_config([1, 2], True, True) == ({}, {})


def test_load_step_configure_from_file(tmp_path):
    conf = tmp_path / "conf.json"
    conf.write_text(json.dumps(ROOT), encoding="utf-8")
    settings = Settings(conf_path=str(conf), jail_mode=False, smack_mode=False)
    step_settings = StepSettings()
    assert step_settings.load_step_configure(settings) is True
    assert step_settings.remove_steps == {TaskStep.REMOVE_STARTED: TaskStep.APP_CLOSE_NEEDED}
    assert step_settings.install_steps == {
        TaskStep.IPK_INSTALL_COMPLETE: TaskStep.SERVICE_INSTALL_NEEDED
    }


def test_load_step_configure_missing_file(tmp_path):
    settings = Settings(conf_path=str(tmp_path / "absent.json"))
    step_settings = StepSettings()
    assert step_settings.load_step_configure(settings) is False
    assert step_settings.install_steps == {}


def test_load_step_configure_bad_json(tmp_path):
    conf = tmp_path / "conf.json"
    conf.write_text("{not json", encoding="utf-8")
    assert StepSettings().load_step_configure(Settings(conf_path=str(conf))) is False


def test_load_step_configure_null_root(tmp_path):
    conf = tmp_path / "conf.json"
    conf.write_text("null", encoding="utf-8")
    assert StepSettings().load_step_configure(Settings(conf_path=str(conf))) is False