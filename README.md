# appinstalld

The building blocks of an application installer daemon. The package holds:

- the path settings and feature flags of the installer;
- helpers for looking up values in parsed JSON;
- a small structured logger;
- each step of the install and remove workflows. These steps parse and
  install IPK packages, install unpackaged apps, close running apps, install
  and uninstall service bus files, apply and remove SMACK labels and rules,
  remove jails, and remove app data.

It has no dependencies outside the standard library.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Settings

`appinstalld.settings.Settings` is a dataclass. It holds the install
locations, the luna-service directories, the role template paths and the opkg
paths.

`Settings.from_system()` builds an instance from the running system:

- it sets `dev_mode`, `jail_mode` and `smack_mode` from the files that are
  present;
- it calls `parse_opkg_configure()`, which reads `info_dir`, `status_file` and
  `lock_file` from the opkg configuration file.

`get_settings()` returns one shared instance built this way.

```python
from appinstalld.settings import Settings, luna_unified_app_json_file_name

settings = Settings()
settings.install_application_path(True)   # "/media/cryptofs/apps/usr/palm/applications"
settings.luna_role_files_path(False, True)  # "/var/ls2-dev/roles/pub"
settings.luna_unified_roles_dir(True)     # "/var/luna-service2/roles.d"
luna_unified_app_json_file_name("com.example.app")  # "com.example.app.app.json"
```

The module also defines the SMACK tool names and directories:
`CHSMACK_EXEC`, `SMACKCTL_EXEC`, `SMACK_RULES_GEN_EXEC`, `SMACK_RULES_DIR` and
`SMACK_RULES_OVERLAY`.

## Step configuration

`appinstalld.step_settings.parse_step_config(root, jail_mode, smack_mode)`
turns the `installSteps` and `removeSteps` arrays of the daemon configuration
into two dicts. Each dict maps a status `TaskStep` to an action `TaskStep`.
When a feature is off, its jail or SMACK steps are dropped. The status that
led to a dropped step then leads to the step that came after it.

```python
from appinstalld.step_settings import parse_step_config
from appinstalld.step import TaskStep

root = {"installSteps": [
    {"status": "IpkInstallComplete", "action": "InstallSmackNeeded"},
    {"status": "InstallSmackComplete", "action": "ServiceInstallNeeded"},
]}
install, remove = parse_step_config(root, jail_mode=False, smack_mode=False)
# install == {TaskStep.IPK_INSTALL_COMPLETE: TaskStep.SERVICE_INSTALL_NEEDED}
```

`StepSettings.load_step_configure(settings)` reads the JSON file at
`settings.conf_path` into `install_steps` and `remove_steps`. It returns
`False` if the file cannot be read.

## Tasks and steps

`appinstalld.step` defines:

- `Task`, the state of one request;
- the enums `TaskStep`, `ErrorKind` and `ErrorCode`;
- `PathInfo`, which holds service bus directories;
- the abstract `Step`.

A step's `proceed(task)` starts it. The step records its progress with
`task.set_step(...)` and its failures with `task.set_error(...)`, then calls
`task.proceed()`, which runs `task.on_proceed` if one is set.

```python
from appinstalld.step import RemoveStartStep, Task, TaskStep

task = Task(name="RemoveTask", app_id="com.example.app")
RemoveStartStep().proceed(task)
assert task.step is TaskStep.REMOVE_STARTED and task.proceed_count == 1
```

The steps, and where they live:

- `appinstalld.step`: `RemoveStartStep`, `RemoveJailStep`, `GetIpkInfoStep`
- `appinstalld.app_close`: `AppCloseStep`, plus `is_privileged_package` and
  `build_call_items`
- `appinstalld.ipk_steps`: `IpkParseStep`, `IpkInstallStep`,
  `UnpackagedInstallStep`, plus `install_error_text` and `get_storage_size`
- `appinstalld.remove_steps`: `IpkRemoveStep`, `DataRemoveStep`, plus
  `data_dirs`
- `appinstalld.service_steps`: `ServiceInstallStep`, `ServiceUninstallStep`,
  plus `install_path_info` and `uninstall_path_infos`
- `appinstalld.smack`: `InstallSmackStep`, `RemoveSmackStep`, plus the command
  builders `chsmack_command`, `rules_gen_command`, `smackctl_command` and
  `remount_command`

Each step takes its collaborators as constructor arguments. Depending on the
step, these are callables that:

- run bus call chains;
- query app information;
- extract packages and parse control files;
- start the package installer;
- install service files;
- read app and service information;
- run commands.

The default command runner, `appinstalld.smack.run_command`, runs the program
with `subprocess`. It raises `CommandFailed` if the program cannot be started
or exits with a non-zero status.

## JSON helpers

`appinstalld.jvalue_util` works on parsed JSON made of dicts and lists:

- `get_value(json, *keys, kind=...)` returns the value under one to three
  nested keys, checked against `object`, `str`, `int` (a number that fits
  32 bits) or `bool`. It returns `None` when a key is missing or the type
  does not match.
- `has_key(json, first, second, third)` tells whether a key path exists.
- `add_unique_item_to_array(array, item)` appends a string to a list unless
  it is already there.

## Logging

`appinstalld.logger.get_logger()` returns the shared `Logger`. How it writes
depends on its `LogType`:

- `LogType.CONSOLE` writes lines such as `[I][Installer][run][task] started`,
  followed by a detail line if there is one;
- `LogType.PMLOG`, the default, passes records to the standard `logging`
  module under the name `appinstalld`.

Records below the level set with `set_level` are dropped.

## What the package does not do

There is no daemon, no bus service and no command-line program here. The
package does not talk to the system bus, run opkg, extract IPK archives, parse
control files or read `appinfo.json` of installed packages on its own. These
jobs are supplied by the callables passed to each step. There is also no task
queue that decides which step runs next: the step maps from `step_settings`
describe the order, and the caller drives it.