"""Enumerate installed runtimes, SDKs, workload manifests and workload sets.

Layout under the install root::

    sdk/<version>/.version
    shared/<framework>/<version>/.version
    sdk-manifests/<band>/<manifest-id>/<version>/WorkloadManifest.json
    sdk-manifests/<band>/workloadsets/<version>/*.workloadset.json
    metadata/references/<band>/<manifest-id>/<version>/<referencing band>/<workload set>

Entries that are hidden, unparsable or missing their completeness marker
are treated as absent: another process may be halfway through installing
or removing them.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Dict, List, Optional, Tuple

from constants import ComponentKinds, Constants
from common.file_ops import NO_DEADLINE, Deadline, retry_io
from common.logging_utils import Timer, extra_context, is_debug_enabled

from .errors import CatalogIntegrityError, CatalogReadError, ParseError
from .models import FeatureBand, InstalledVersion, InstalledVersionSet, ManifestRef, Version, WorkloadSet
from .ordering import DEFAULT_ORDERING, VersionOrdering
from .parser import parse_manifest_ref, parse_version, scheme_for

logger = logging.getLogger(__name__)


def band_from_dir_name(name: str) -> Optional[FeatureBand]:
    """Read a band directory name such as ``8.0.100`` or ``9.0.100-preview.7``."""
    try:
        version = parse_version(name)
    except ParseError:
        return None
    if version.patch or version.subpatch:
        return None
    return version.feature_band


def _is_baseline(path: str) -> bool:
    """Installs carrying the baseline marker were bundled with an SDK and are never collected."""
    return os.path.isfile(os.path.join(path, Constants.BASELINE_MARKER))


class VersionCatalog:
    """Reads the install root and produces ordered, de-duplicated version sets."""

    def __init__(self, root: str, ordering: Optional[VersionOrdering] = None,
                 deadline: Deadline = NO_DEADLINE):
        self.root = os.path.abspath(root)
        self.ordering = ordering or DEFAULT_ORDERING
        self.deadline = deadline

    # -- low level -----------------------------------------------------------------

    def _listdir(self, path: str, required: bool = False) -> List[str]:
        """List a directory; missing optional directories mean "nothing installed"."""
        if not os.path.exists(path):
            if required:
                raise CatalogReadError(f"Install location does not exist: {path}")
            return []
        if not os.path.isdir(path):
            raise CatalogReadError(f"Install location is not a directory: {path}")
        try:
            return sorted(retry_io(lambda: os.listdir(path), what=f"list {path}", deadline=self.deadline))
        except FileNotFoundError:
            # Removed between the existence check and the listing.
            if required:
                raise CatalogReadError(f"Install location disappeared: {path}") from None
            return []
        except OSError as exc:
            raise CatalogReadError(f"Cannot read install location {path}: {exc}") from exc

    def _skip(self, path: str, reason: str) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Skipping catalog entry",
                extra=extra_context(event="catalog_skip", component="catalog", target=path, outcome=reason),
            )

    def _version_dirs(self, parent: str, kind: ComponentKinds, marker: Optional[str]) -> List[Tuple[Version, str]]:
        found: List[Tuple[Version, str]] = []
        for name in self._listdir(parent):
            path = os.path.join(parent, name)
            if name.startswith("."):
                self._skip(path, "hidden")
                continue
            if not os.path.isdir(path):
                self._skip(path, "not a directory")
                continue
            try:
                version = parse_version(name, scheme_for(kind))
            except ParseError:
                self._skip(path, "unparsable")
                continue
            if marker is not None and not os.path.isfile(os.path.join(path, marker)):
                self._skip(path, "incomplete")
                continue
            if kind == ComponentKinds.WORKLOAD_SET and not self._workload_set_files(path):
                self._skip(path, "incomplete")
                continue
            found.append((version, path))
        return found

    def _workload_set_files(self, path: str) -> List[str]:
        try:
            names = os.listdir(path)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise CatalogReadError(f"Cannot read workload set {path}: {exc}") from exc
        return sorted(n for n in names if n.lower().endswith(Constants.WORKLOAD_SET_SUFFIX))

    def _band_dirs(self) -> List[Tuple[FeatureBand, str]]:
        parent = os.path.join(self.root, Constants.MANIFESTS_DIR)
        bands = []
        for name in self._listdir(parent):
            path = os.path.join(parent, name)
            band = band_from_dir_name(name)
            if band is None or not os.path.isdir(path):
                self._skip(path, "not a feature band")
                continue
            bands.append((band, path))
        return bands

    # -- enumeration ---------------------------------------------------------------

    def _scan(self, kind: ComponentKinds) -> List[InstalledVersion]:
        if kind == ComponentKinds.SDK:
            return [
                InstalledVersion(kind, Constants.DEFAULT_SDK_COMPONENT, v, p, baseline=_is_baseline(p))
                for v, p in self._version_dirs(os.path.join(self.root, Constants.SDK_DIR), kind,
                                               Constants.VERSION_MARKER)
            ]
        if kind == ComponentKinds.RUNTIME:
            items = []
            shared = os.path.join(self.root, Constants.SHARED_DIR)
            for framework in self._listdir(shared):
                fw_path = os.path.join(shared, framework)
                if framework.startswith(".") or not os.path.isdir(fw_path):
                    continue
                items.extend(
                    InstalledVersion(kind, framework, v, p, baseline=_is_baseline(p))
                    for v, p in self._version_dirs(fw_path, kind, Constants.VERSION_MARKER)
                )
            return items
        if kind == ComponentKinds.WORKLOAD_MANIFEST:
            items = []
            for band, band_path in self._band_dirs():
                for manifest_id in self._listdir(band_path):
                    m_path = os.path.join(band_path, manifest_id)
                    if (manifest_id.startswith(".") or manifest_id.lower() == Constants.WORKLOAD_SETS_DIR
                            or not os.path.isdir(m_path)):
                        continue
                    items.extend(
                        InstalledVersion(kind, manifest_id, v, p, owning_band=band, baseline=_is_baseline(p))
                        for v, p in self._version_dirs(m_path, kind, Constants.MANIFEST_MARKER)
                    )
            return items
        if kind == ComponentKinds.WORKLOAD_SET:
            items = []
            for band, band_path in self._band_dirs():
                sets_path = os.path.join(band_path, Constants.WORKLOAD_SETS_DIR)
                for v, p in self._version_dirs(sets_path, kind, None):
                    items.append(InstalledVersion(kind, Constants.WORKLOAD_SET_COMPONENT, v, p,
                                                  owning_band=band, baseline=_is_baseline(p)))
            return items
        raise ValueError(f"Unsupported component kind: {kind}")

    def list(self, kind: ComponentKinds, component_id: Optional[str] = None) -> InstalledVersionSet:
        """Return the installed versions of one kind, ordered and de-duplicated.

        Raises:
            CatalogReadError: the install root or a kind directory cannot be read.
            CatalogIntegrityError: two distinct installs claim the same version.
        """
        self._listdir(self.root, required=True)
        with Timer() as t:
            scanned = self._scan(kind)
            unique: Dict[tuple, InstalledVersion] = {}
            for item in scanned:
                if component_id is not None and item.component_id.lower() != component_id.lower():
                    continue
                key = (item.component_id.lower(), item.owning_band, item.version)
                prior = unique.get(key)
                if prior is None:
                    unique[key] = item
                    continue
                if os.path.realpath(prior.path) == os.path.realpath(item.path):
                    continue
                raise CatalogIntegrityError(
                    f"Ambiguous {kind.value} install: {item.component_id} {item.version} "
                    f"is claimed by both {prior.path} and {item.path}"
                )
        result = InstalledVersionSet(kind, unique.values())
        if is_debug_enabled(logger):
            logger.debug(
                "Catalog listed",
                extra=extra_context(event="catalog_list", component="catalog", action=kind.value,
                                    outcome="success", count=len(result), duration_ms=t.duration_ms()),
            )
        return result

    # -- workload sets and reference markers ---------------------------------------

    def load_workload_set(self, installed: InstalledVersion) -> WorkloadSet:
        """Read the manifest mapping of an installed workload set."""
        manifests: Dict[str, ManifestRef] = {}
        for name in self._workload_set_files(installed.path):
            file_path = os.path.join(installed.path, name)
            try:
                with open(file_path, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except FileNotFoundError:
                continue
            except (OSError, json.JSONDecodeError) as exc:
                raise CatalogReadError(f"Cannot read workload set file {file_path}: {exc}") from exc
            if not isinstance(data, dict):
                raise CatalogReadError(f"Workload set file {file_path} is not a JSON object")
            for manifest_id, raw in data.items():
                try:
                    ref = parse_manifest_ref(raw)
                except ParseError as exc:
                    raise CatalogIntegrityError(f"{file_path}: {exc}") from exc
                prior = manifests.get(manifest_id)
                if prior is not None and prior != ref:
                    raise CatalogIntegrityError(
                        f"Workload set {installed.version} maps {manifest_id} to both {prior} and {ref}"
                    )
                manifests[manifest_id] = ref
        return WorkloadSet(installed.version, manifests, installed.path, installed.baseline)

    def references_root(self) -> str:
        return os.path.join(self.root, Constants.METADATA_DIR, Constants.REFERENCES_DIR)

    def reference_marker_dir(self, band: FeatureBand, manifest_id: str, version: Version) -> str:
        return os.path.join(self.references_root(), str(band), manifest_id, str(version))

    def referencing_bands(self, band: FeatureBand, manifest_id: str, version: Version) -> List[str]:
        """Bands holding an explicit cross-band reference marker to a manifest."""
        base = self.reference_marker_dir(band, manifest_id, version)
        bands = []
        for ref_band in self._listdir(base):
            ref_path = os.path.join(base, ref_band)
            if os.path.isdir(ref_path) and any(not n.startswith(".") for n in self._listdir(ref_path)):
                bands.append(ref_band)
        return bands
