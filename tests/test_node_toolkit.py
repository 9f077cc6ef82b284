# Directory: tests/
# Filename: test_node_toolkit.py

import pytest

import node_toolkit
from controllers.pairing import BluetoothDevice
from utils.config_store import SystemConfig
from utils.persistence import MemoryStore


@pytest.fixture(autouse=True)
def clean_global_node():
    node_toolkit.reset_global_node()
    yield
    node_toolkit.reset_global_node()


def test_resolve_state_dir_precedence(monkeypatch, tmp_path):
    monkeypatch.delenv(node_toolkit.STATE_DIR_ENV, raising=False)
    assert node_toolkit.resolve_state_dir() == node_toolkit.DEFAULT_STATE_DIR
    monkeypatch.setenv(node_toolkit.STATE_DIR_ENV, str(tmp_path))
    assert node_toolkit.resolve_state_dir() == str(tmp_path)
    assert node_toolkit.resolve_state_dir("/explicit") == "/explicit"


def test_build_node_with_memory_store():
    node = node_toolkit.build_node(storage=MemoryStore())
    assert node.state == 'WELCOME'
    assert node.config == SystemConfig()


def test_state_survives_restart(tmp_path):
    node = node_toolkit.build_node(state_dir=str(tmp_path))
    node.start()
    node.device_paired(device=BluetoothDevice(id="01", name="SmartNode-01", signal_strength=-50))
    node.become_master()
    node.save_setup(config=SystemConfig().replace(master_password="keep-me"))

    restarted = node_toolkit.build_node(state_dir=str(tmp_path))
    assert restarted.state == 'WELCOME'
    assert restarted.config.master_password == "keep-me"
    assert restarted.onboarding_complete is True
    assert restarted.connected_device is None
    assert len(restarted.access_log) == 0


def test_get_node_is_cached(monkeypatch, tmp_path):
    monkeypatch.setenv(node_toolkit.STATE_DIR_ENV, str(tmp_path))
    first = node_toolkit.get_node()
    assert node_toolkit.get_node() is first


def test_get_node_wraps_build_failures(monkeypatch):
    def broken_build():
        raise OSError("no storage")
    monkeypatch.setattr(node_toolkit, "build_node", broken_build)
    with pytest.raises(RuntimeError):
        node_toolkit.get_node()
