"""Asset fingerprinting — content-hash theme asset filenames.

Runs after every page and asset has been written.  Files under
``build/assets/`` are renamed with an 8-character content digest and
every reference in exported HTML and CSS is rewritten to the new name.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path

ASSETS_DIR = "assets"
MANIFEST_FILENAME = "manifest.json"

# Files whose text may reference assets
_REWRITE_SUFFIXES = (".html", ".css", ".js")


def fingerprint_assets(output_dir: Path, assets_dir: str = ASSETS_DIR) -> dict[str, str]:
    """Rename theme assets with content-hash suffixes.

    For each file in ``output_dir/assets/``, computes an 8-character
    hex digest of its contents and renames it:

        ``style.css`` -> ``style.a1b2c3d4.css``

    Args:
        output_dir: Root export output directory.
        assets_dir: Directory below ``output_dir`` to fingerprint.

    Returns:
        Mapping of original paths (``/assets/style.css``) to fingerprinted
        paths (``/assets/style.a1b2c3d4.css``).

    """
    root = output_dir / assets_dir
    if not root.is_dir():
        return {}

    manifest: dict[str, str] = {}

    for filepath in sorted(root.rglob("*")):
        if not filepath.is_file():
            continue

        digest = hashlib.sha256(filepath.read_bytes()).hexdigest()[:8]
        new_path = filepath.with_name(f"{filepath.stem}.{digest}{filepath.suffix}")
        filepath.rename(new_path)

        old_rel = filepath.relative_to(output_dir).as_posix()
        new_rel = new_path.relative_to(output_dir).as_posix()
        manifest[f"/{old_rel}"] = f"/{new_rel}"

    return manifest


def rewrite_asset_refs(output_dir: Path, manifest: dict[str, str]) -> int:
    """Rewrite asset references in exported HTML, CSS and JS files.

    Longer paths are replaced first so ``/assets/app.css`` never clobbers
    part of ``/assets/app.css.map``.

    Returns:
        Number of files modified.

    """
    if not manifest:
        return 0

    # Alternation tries longer paths first; one pass never rewrites a rewritten name
    ordered = sorted(manifest, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(original) for original in ordered))
    modified = 0

    for path in sorted(output_dir.rglob("*")):
        if path.suffix not in _REWRITE_SUFFIXES or not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            continue

        updated = pattern.sub(lambda match: manifest[match.group(0)], text)

        if updated != text:
            path.write_text(updated, encoding="utf-8")
            modified += 1

    return modified


def write_manifest(output_dir: Path, manifest: dict[str, str]) -> Path:
    """Write the asset manifest to ``output_dir/manifest.json``."""
    manifest_path = output_dir / MANIFEST_FILENAME
    manifest_path.write_text(
        json.dumps(manifest, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return manifest_path
