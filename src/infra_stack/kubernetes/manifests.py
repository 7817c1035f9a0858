"""Render manifest dictionaries to YAML."""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import yaml

logger = logging.getLogger(__name__)


def dump_manifests(manifests: Iterable[Dict[str, Any]]) -> str:
    """Serialise manifests as one multi-document YAML string, keys in build order."""
    return yaml.safe_dump_all(
        list(manifests),
        sort_keys=False,
        default_flow_style=False,
        explicit_start=True,
    )


def manifest_filename(index: int, manifest: Dict[str, Any]) -> str:
    kind = manifest.get("kind", "resource").lower()
    name = manifest.get("metadata", {}).get("name", "unnamed")
    return f"{index:02d}-{kind}-{name}.yaml"


def write_manifests(manifests: Iterable[Dict[str, Any]], out_dir: Union[str, Path]) -> List[Path]:
    """Write one file per manifest; the numeric prefix keeps apply order."""
    out_path = Path(out_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    written = []
    for index, manifest in enumerate(manifests, start=1):
        path = out_path / manifest_filename(index, manifest)
        with open(path, 'w') as f:
            yaml.safe_dump(manifest, f, sort_keys=False, default_flow_style=False)
        written.append(path)

    logger.info(f"Wrote {len(written)} manifest(s) to {out_path}")
    return written
