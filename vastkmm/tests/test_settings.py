import pytest
import yaml
from pydantic import ValidationError

from vastkmm.config import Config
from vastkmm.modules.settings import KmmSettings, get_settings, set_settings
from vastkmm.modules.utils import redact_sensitive_data


def test_defaults():
    settings = KmmSettings()
    assert settings.timeouts.pods_appear == 60
    assert settings.timeouts.pod_ready == 300
    assert settings.timeouts.pod_ready_prebuilt == 30
    assert settings.timeouts.log_stream_attempts == 10
    assert settings.cluster.oc_binary == Config.OC_BINARY


def test_load_from_file(tmp_path):
    path = tmp_path / "vastkmm.yaml"
    path.write_text(yaml.safe_dump({
        'cluster': {'probe_concurrency': 4, 'kubeconfig': '~/.kube/prod'},
        'timeouts': {'pods_appear': 120},
        'unknown': {'ignored': True},
    }))
    settings = KmmSettings.load(path)
    assert settings.cluster.probe_concurrency == 4
    assert not settings.cluster.kubeconfig.startswith('~')
    assert settings.timeouts.pods_appear == 120
    assert settings.timeouts.poll_interval == 2


def test_missing_file_uses_defaults(tmp_path):
    assert KmmSettings.load(tmp_path / "missing.yaml") == KmmSettings()


def test_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        KmmSettings(cluster={'probe_concurrency': 0})


def test_save_round_trip(tmp_path):
    settings = KmmSettings(timeouts={'pod_ready': 600})
    path = tmp_path / "out" / "config.yaml"
    settings.save(path)
    assert KmmSettings.load(path).timeouts.pod_ready == 600


def test_global_settings(tmp_path):
    custom = KmmSettings(timeouts={'pods_appear': 5})
    set_settings(custom)
    assert get_settings() is custom


def test_redact_sensitive_data():
    data = {'KMM_PULL_SECRET': 'vast-pull', 'NAMESPACE': 'vastnfs-kmm', 'nested': [{'token': 'abc'}]}
    assert redact_sensitive_data(data) == {
        'KMM_PULL_SECRET': '[REDACTED]',
        'NAMESPACE': 'vastnfs-kmm',
        'nested': [{'token': '[REDACTED]'}],
    }
