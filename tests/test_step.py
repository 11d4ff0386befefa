import pytest

from appinstalld.step import (
    ErrorCode,
    ErrorKind,
    GetIpkInfoStep,
    PathInfo,
    RemoveJailStep,
    RemoveStartStep,
    Step,
    Task,
    TaskStep,
)


def test_step_is_abstract():
    with pytest.raises(TypeError):
        Step()


def test_task_step_from_config_name():
    assert TaskStep("RemoveStarted") is TaskStep.REMOVE_STARTED
    with pytest.raises(ValueError):
        TaskStep("NoSuchStep")


def test_task_records_history_and_error():
    task = Task()
    task.set_step(TaskStep.IPK_PARSE_COMPLETE)
    task.set_step(TaskStep.IPK_INSTALL_REQUESTED)
    assert task.history == [TaskStep.IPK_PARSE_COMPLETE, TaskStep.IPK_INSTALL_REQUESTED]
    assert task.step is TaskStep.IPK_INSTALL_REQUESTED
    task.set_error(ErrorKind.INSTALL, ErrorCode.INSTALL_GENERAL, "boom")
    assert task.failed
    assert task.error_text == "boom"


def test_task_verify_requires_true():
    assert Task(param={"verify": True}).verify is True
    assert Task(param={"verify": 1}).verify is False
    assert Task().verify is False


def test_path_info_defaults():
    info = PathInfo(verified=True, roled="r")
    assert info.roled == "r"
    assert info.manifestsd == ""


def test_remove_start_step_immediate():
    seen = []
    task = Task(name="RemoveTask", on_proceed=lambda t: seen.append(t.step))
    assert RemoveStartStep().proceed(task) is True
    assert seen == [TaskStep.REMOVE_STARTED]
    assert task.proceed_count == 1


def test_remove_start_step_deferred():
    pending = []
    task = Task(name="RemoveTask")
    RemoveStartStep(defer=pending.append).proceed(task)
    assert task.step is TaskStep.REMOVE_STARTED
    assert task.proceed_count == 0
    pending[0]()
    assert task.proceed_count == 1


def test_remove_jail_step_success():
    calls = []

    def jailer(app_id, callback):
        calls.append(app_id)
        callback(True)
        return True

    task = Task(name="RemoveTask", app_id="com.example.app")
    assert RemoveJailStep(jailer).proceed(task) is True
    assert calls == ["com.example.app"]
    assert task.history == [TaskStep.REMOVE_JAIL_REQUESTED, TaskStep.REMOVE_JAIL_COMPLETE]
    assert task.proceed_count == 1
    assert not task.failed


def test_remove_jail_step_jailer_unavailable_still_completes():
    pending = []
    task = Task(name="RemoveTask", app_id="com.example.app")
    step = RemoveJailStep(lambda app_id, cb: False, defer=pending.append)
    assert step.proceed(task) is True
    assert task.step is TaskStep.REMOVE_JAIL_REQUESTED
    pending[0]()
    assert task.step is TaskStep.REMOVE_JAIL_COMPLETE
    assert not task.failed


def test_get_ipk_info_without_sessions():
    asked = []

    def query(session_id, package_id, callback):
        asked.append((session_id, package_id))
        callback({"appInfo": {"id": package_id}})
        return True

    task = Task(package_id="com.example.app")
    assert GetIpkInfoStep(query).proceed(task) is True
    assert asked == [(None, "com.example.app")]
    assert task.origin_app_info == {"id": "com.example.app"}
    assert task.history == [TaskStep.GET_IPK_INFO_REQUESTED, TaskStep.GET_IPK_INFO_COMPLETE]


def test_get_ipk_info_uses_first_session():
    asked = []

    def query(session_id, package_id, callback):
        asked.append(session_id)
        return True

    task = Task(package_id="p")
    GetIpkInfoStep(query, sessions=["first", "second"]).proceed(task)
    assert asked == ["first"]
    assert task.step is TaskStep.GET_IPK_INFO_REQUESTED


def test_get_ipk_info_empty_sessions_fails():
    task = Task(package_id="p")
    step = GetIpkInfoStep(lambda *a: True, sessions=[])
    assert step.proceed(task) is False
    assert task.error_kind is ErrorKind.INSTALL
    assert task.error_code is ErrorCode.INSTALL_GENERAL
    assert task.error_text == "empty session list, cannot query getAppInfo"
    assert task.proceed_count == 1


def test_get_ipk_info_missing_app_info():
    task = Task(package_id="p")
    step = GetIpkInfoStep(lambda s, p, cb: True)
    step.proceed(task)
    step.on_app_info({"returnValue": True})
    assert task.origin_app_info is None
    assert task.step is TaskStep.GET_IPK_INFO_COMPLETE