"""Shared fixtures: fake install roots and state directories under tmp_path."""

import json
import os

import pytest

from constants import ComponentKinds, Constants
from versioning.models import InstalledVersion
from versioning.parser import parse_version, scheme_for


class FakeInstallRoot:
    """Builds the on-disk layout the catalog reads."""

    def __init__(self, root):
        self.root = str(root)
        os.makedirs(self.root, exist_ok=True)

    def _touch(self, path, text=""):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        return path

    def sdk(self, version, complete=True):
        path = os.path.join(self.root, Constants.SDK_DIR, version)
        os.makedirs(path, exist_ok=True)
        if complete:
            self._touch(os.path.join(path, Constants.VERSION_MARKER), version)
        return path

    def runtime(self, version, framework=Constants.DEFAULT_FRAMEWORK, complete=True):
        path = os.path.join(self.root, Constants.SHARED_DIR, framework, version)
        os.makedirs(path, exist_ok=True)
        if complete:
            self._touch(os.path.join(path, Constants.VERSION_MARKER), version)
        return path

    def manifest(self, band, manifest_id, version, baseline=False):
        path = os.path.join(self.root, Constants.MANIFESTS_DIR, band, manifest_id, version)
        self._touch(os.path.join(path, Constants.MANIFEST_MARKER), "{}")
        if baseline:
            self._touch(os.path.join(path, Constants.BASELINE_MARKER), "{}")
        return path

    def workload_set(self, band, version, manifests, baseline=False):
        path = os.path.join(self.root, Constants.MANIFESTS_DIR, band, Constants.WORKLOAD_SETS_DIR, version)
        name = Constants.BASELINE_MARKER if baseline else "microsoft.net.workloads" + Constants.WORKLOAD_SET_SUFFIX
        self._touch(os.path.join(path, name), json.dumps(manifests))
        return path

    def reference(self, band, manifest_id, version, referencing_band, workload_set):
        marker_dir = os.path.join(self.root, Constants.METADATA_DIR, Constants.REFERENCES_DIR,
                                  band, manifest_id, version, referencing_band)
        return self._touch(os.path.join(marker_dir, workload_set))


def _installed(version, kind=ComponentKinds.SDK, component_id=Constants.DEFAULT_SDK_COMPONENT, path=None):
    v = parse_version(version, scheme_for(kind))
    return InstalledVersion(kind, component_id, v, path or f"/fake/{component_id}/{version}")


@pytest.fixture
def make_installed():
    """Factory for InstalledVersion values that do not touch the disk."""
    return _installed


@pytest.fixture
def install_root(tmp_path):
    """An empty install root."""
    return FakeInstallRoot(tmp_path / "dotnet")


@pytest.fixture
def state_dir(tmp_path):
    """Directory for pins and locks."""
    path = tmp_path / "state"
    path.mkdir()
    return str(path)


@pytest.fixture(autouse=True)
def isolated_constants(monkeypatch, tmp_path):
    """Keep tunables and ambient env from leaking between tests."""
    for name in ("LOCK_TIMEOUT_SEC", "STALE_LOCK_SEC", "RETRY_MAX", "RETRY_BASE_DELAY_SEC",
                 "DEFAULT_ALLOW_PRERELEASE", "PRERELEASE_LABELS", "DEFAULT_ROOT", "LOG_FORMAT"):
        monkeypatch.setattr(Constants, name, getattr(Constants, name))
    for env in (Constants.ENV_ROOT, Constants.ENV_STATE_DIR, Constants.ENV_VERSION,
                Constants.ENV_ROLL_FORWARD, Constants.ENV_ROLL_FORWARD_LEGACY,
                Constants.ENV_ALLOW_PRERELEASE, Constants.ENV_LOG_LEVEL):
        monkeypatch.delenv(env, raising=False)
    monkeypatch.setenv(Constants.ENV_CONFIG, str(tmp_path / "no-tool-config.yml"))
