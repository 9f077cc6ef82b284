# Directory: tests/
# Filename: test_persistence.py

import os

import pytest

from controllers.errors import PersistenceError
from utils.persistence import JsonFileStore, MemoryStore


def test_memory_store_roundtrip():
    store = MemoryStore({'a': '1'})
    assert store.get('a') == '1'
    store.set('b', '2')
    store.delete('a')
    store.delete('never-existed')
    assert store.get('a') is None
    assert store.keys() == ['b']


def test_json_file_store_writes_one_file_per_key(tmp_path):
    store = JsonFileStore(str(tmp_path / "state"))
    assert store.get('sas_config_v1') is None
    store.set('sas_config_v1', '{"deviceLabel": "Door"}')
    store.set('sas_onboarding_complete', 'true')
    assert sorted(os.listdir(tmp_path / "state")) == ['sas_config_v1.json', 'sas_onboarding_complete.json']
    assert JsonFileStore(str(tmp_path / "state")).get('sas_config_v1') == '{"deviceLabel": "Door"}'


def test_json_file_store_overwrite_leaves_no_temp_files(tmp_path):
    store = JsonFileStore(str(tmp_path))
    store.set('k', 'one')
    store.set('k', 'two')
    assert store.get('k') == 'two'
    assert os.listdir(tmp_path) == ['k.json']


def test_json_file_store_delete(tmp_path):
    store = JsonFileStore(str(tmp_path))
    store.set('k', 'v')
    store.delete('k')
    store.delete('k')
    assert store.get('k') is None


def test_json_file_store_write_failure_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    store = JsonFileStore(str(blocker))
    with pytest.raises(PersistenceError):
        store.set('k', 'v')


def test_json_file_store_undecodable_file_reads_as_absent(tmp_path, caplog):
    (tmp_path / "sas_config_v1.json").write_bytes(b'{"deviceLabel": "\xff\xfe"}')
    store = JsonFileStore(str(tmp_path))
    assert store.get('sas_config_v1') is None
    assert "Could not read" in caplog.text
