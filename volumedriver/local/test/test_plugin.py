""" Tests for the plugin protocol layer and its configuration """

import io
import json
import logging
from unittest.mock import patch, MagicMock

import pytest

from volumedriver.local.exceptions import ConfigError
from volumedriver.local.plugin import Plugin, load_config, merge_config, parse_args


@pytest.fixture
def config():
    return {"mountDir": "/mnt/volumes", "log": {"target": "stderr"}}


@pytest.fixture
def plugin(config, log, fake_fs):
    return Plugin(config=config, logger=log, fs_handler=fake_fs)


@pytest.fixture
def bare_plugin_logger():
    """ The shared "local-volume" logger without handlers, restored afterwards """
    logger = logging.getLogger("local-volume")
    saved = logger.handlers[:]
    logger.handlers = []

    yield logger

    logger.handlers = saved


def request(plugin, path, body=None):
    status, resp = plugin.handle_request(path, json.dumps(body).encode("utf-8") if body is not None else b"")
    assert status == 200
    return resp


def test_activate(plugin):
    assert request(plugin, "/Plugin.Activate") == {"Implements": ["VolumeDriver"], "Err": ""}


def test_capabilities(plugin):
    assert request(plugin, "/VolumeDriver.Capabilities") == {"Capabilities": {"Scope": "local"}, "Err": ""}


def test_lifecycle(plugin, fake_fs):
    assert request(plugin, "/VolumeDriver.Create", {"Name": "v", "Opts": {"size": "1G"}}) == {"Err": ""}

    resp = request(plugin, "/VolumeDriver.Mount", {"Name": "v", "ID": "container-1"})
    assert resp == {"Mountpoint": "/mnt/volumes/_mounts/v", "Err": ""}

    assert request(plugin, "/VolumeDriver.Path", {"Name": "v"}) == resp
    assert request(plugin, "/VolumeDriver.Get", {"Name": "v"}) == {
        "Volume": {"Name": "v", "Mountpoint": "/mnt/volumes/_mounts/v"}, "Err": ""
    }
    assert request(plugin, "/VolumeDriver.List", {}) == {
        "Volumes": [{"Name": "v", "Mountpoint": "/mnt/volumes/_mounts/v"}], "Err": ""
    }

    assert request(plugin, "/VolumeDriver.Unmount", {"Name": "v", "ID": "container-1"}) == {"Err": ""}
    assert request(plugin, "/VolumeDriver.Remove", {"Name": "v"}) == {"Err": ""}
    assert request(plugin, "/VolumeDriver.List") == {"Volumes": [], "Err": ""}
    assert fake_fs.links == {}


def test_missing_name(plugin):
    assert request(plugin, "/VolumeDriver.Create", {}) == {"Err": "Missing mandatory 'volume_name'"}


def test_failure_is_reported_in_err(plugin):
    resp = request(plugin, "/VolumeDriver.Mount", {"Name": "nope"})
    assert resp == {"Err": "Volume 'nope' must be created before being mounted"}


def test_unknown_route(plugin):
    status, resp = plugin.handle_request("/VolumeDriver.Resize", b"{}")
    assert status == 404
    assert "Unknown operation" in resp["Err"]


def test_unknown_operation(plugin):
    assert plugin.run_operation("resize", b"{}") == {"Err": "Unknown operation: resize"}


def test_invalid_json(plugin):
    resp = plugin.run_operation("create", b"{not json")
    assert resp["Err"].startswith("Invalid request: Unable to decode json")


def test_non_object_body(plugin):
    assert plugin.run_operation("create", b"[1, 2]") == {"Err": "Invalid request: Expected a json object"}


@pytest.mark.parametrize("name", [5, ["v"], {"n": 1}, True])
def test_non_string_name(plugin, name):
    resp = plugin.run_operation("create", json.dumps({"Name": name}).encode("utf-8"))

    assert resp["Err"].startswith("Invalid request: Name must be a string")
    assert len(plugin.driver.registry) == 0


def test_name_with_nul_is_refused(plugin):
    resp = request(plugin, "/VolumeDriver.Create", {"Name": "a\x00b"})

    assert resp == {"Err": "Invalid volume name 'a\x00b'"}
    assert plugin.fatal_error is None


def test_unexpected_exception(plugin):
    plugin.driver = MagicMock()
    plugin.driver.create.side_effect = RuntimeError("boom")

    resp = plugin.run_operation("create", b'{"Name": "v"}')

    assert resp == {"Err": "Driver error, check syslog for details."}


@patch("volumedriver.local.plugin.threading.Thread")
def test_fatal_stops_server(mock_thread, config, log, fake_fs):
    config["uniqueVolumeIds"] = True
    config["transport"] = "tcp-json"
    plugin = Plugin(config=config, logger=log, fs_handler=fake_fs)
    plugin.server = MagicMock()

    resp = plugin.run_operation("create", b'{"Name": "not-unique"}')

    assert "Unable to decode" in resp["Err"]
    assert plugin.fatal_error == resp["Err"]
    mock_thread.assert_called_once_with(target=plugin.server.shutdown, daemon=True)
    mock_thread.return_value.start.assert_called_once_with()


@patch("volumedriver.local.plugin.threading.Thread")
def test_fatal_keeps_serving_when_configured(mock_thread, config, log, fake_fs):
    config.update({"uniqueVolumeIds": True, "transport": "tcp-json", "exitOnFatal": False})
    plugin = Plugin(config=config, logger=log, fs_handler=fake_fs)
    plugin.server = MagicMock()

    plugin.run_operation("create", b'{"Name": "not-unique"}')

    assert plugin.fatal_error is not None
    mock_thread.assert_not_called()


def test_unique_ids_need_json_transport(config, log, fake_fs):
    config["uniqueVolumeIds"] = True

    assert not Plugin(config=config, logger=log, fs_handler=fake_fs).driver.paths.unique_volume_ids

    config["transport"] = "tcp-json"

    assert Plugin(config=config, logger=log, fs_handler=fake_fs).driver.paths.unique_volume_ids


def test_stream_logging(config, fake_fs, bare_plugin_logger):
    stream = io.StringIO()

    plugin = Plugin(config=config, log_stream=stream, fs_handler=fake_fs)
    plugin.run_operation("activate")

    assert "Response: " in stream.getvalue()
    assert "activate SUCCESS" in stream.getvalue()


def test_plugins_share_one_log_handler(config, fake_fs, bare_plugin_logger):
    first = io.StringIO()
    second = io.StringIO()

    Plugin(config=config, log_stream=first, fs_handler=fake_fs)
    plugin = Plugin(config=config, log_stream=second, fs_handler=fake_fs)
    plugin.run_operation("activate")

    assert len(bare_plugin_logger.handlers) == 1
    assert first.getvalue().count("activate SUCCESS") == 1
    assert second.getvalue() == ""


def test_get_handler_from_config(config, log):
    from volumedriver.local.filesystem.posix import FilesystemHandlerPosix

    assert isinstance(Plugin(config=config, logger=log).fs_handler, FilesystemHandlerPosix)


# Config

def test_merge_config_defaults():
    cfg = merge_config({"mountDir": "/srv", "log": {"level": "INFO"}})

    assert cfg["mountDir"] == "/srv"
    assert cfg["listenAddr"] == "0.0.0.0:9750"
    assert cfg["transport"] == "tcp"
    assert cfg["log"] == {"target": "syslog", "level": "INFO"}


def test_merge_config_bad_transport():
    with pytest.raises(ConfigError):
        merge_config({"transport": "carrier-pigeon"})


def test_load_config_missing_file(tmp_path):
    assert load_config(str(tmp_path / "nope.conf")) == merge_config({})


def test_load_config(tmp_path):
    path = tmp_path / "localdriver.conf"
    path.write_text("mountDir: /srv/volumes\ntransport: tcp-json\nuniqueVolumeIds: true\n")

    cfg = load_config(str(path))

    assert cfg["mountDir"] == "/srv/volumes"
    assert cfg["transport"] == "tcp-json"
    assert cfg["uniqueVolumeIds"] is True


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "localdriver.conf"
    path.write_text("")

    assert load_config(str(path)) == merge_config({})


@pytest.mark.parametrize("contents", ["- a\n- b\n", "mountDir: [unclosed\n"])
def test_load_config_invalid(tmp_path, contents):
    path = tmp_path / "localdriver.conf"
    path.write_text(contents)

    with pytest.raises(ConfigError):
        load_config(str(path))


def test_parse_args_only_sets_given_flags():
    flags = parse_args(["--mountDir", "/srv", "--uniqueVolumeIds", "--transport", "tcp-json"])

    assert flags.mountDir == "/srv"
    assert flags.uniqueVolumeIds is True
    assert flags.transport == "tcp-json"
    assert flags.listenAddr is None
    assert flags.requireSSL is None


def test_unsupported_fs_type(config, log):
    from volumedriver.local.exceptions import FSHandlerFSTypeNotSupported

    config["fsType"] = "zfs"

    with pytest.raises(FSHandlerFSTypeNotSupported):
        Plugin(config=config, logger=log)
