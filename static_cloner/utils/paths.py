"""
Path utilities for the static cloner.

Maps canonical URLs to their deterministic location in the output tree and
computes relative links between saved files.
"""

import hashlib
import os
import posixpath
from urllib.parse import unquote, urlsplit

from .urls import (
    AssetType,
    get_domain,
    sanitize_filename,
    url_to_relative_file_path,
)


# Extension used when an asset URL has none
_DEFAULT_EXTENSIONS = {
    AssetType.CSS: ".css",
    AssetType.JS: ".js",
    AssetType.IMAGE: ".png",
    AssetType.FONT: ".woff2",
    AssetType.VIDEO: ".mp4",
    AssetType.OTHER: "",
}

# Keep generated file names well below common filesystem limits
_MAX_NAME_LENGTH = 100


def get_domain_dir(url: str) -> str:
    """
    Get the per-site directory name for a URL.

    Args:
        url: Page or asset URL

    Returns:
        Host name made safe for use as a directory name
    """
    return sanitize_filename(get_domain(url) or "site")


def get_page_path(url: str, output_dir: str) -> str:
    """
    Convert a page URL to its local file path.

    Args:
        url: Canonical page URL
        output_dir: Base output directory

    Returns:
        ``{output_dir}/{domain}/{url path}.html``
    """
    relative = url_to_relative_file_path(url)
    return os.path.join(output_dir, get_domain_dir(url), *relative.split("/"))


def get_asset_path(url: str, asset_type: AssetType, output_dir: str) -> str:
    """
    Generate a local path for an asset based on its type.

    A short hash of the URL is added to the file name so that assets with
    the same name in different folders (or with different queries) never
    share a file.

    Args:
        url: Canonical asset URL
        asset_type: Asset type, selects the sub-folder
        output_dir: Base output directory

    Returns:
        ``{output_dir}/{domain}/assets/{type folder}/{name}_{hash}{ext}``
    """
    try:
        path = unquote(urlsplit(url).path)
    except ValueError:
        path = ""

    filename = sanitize_filename(posixpath.basename(path)) or "asset"
    name, ext = os.path.splitext(filename)
    if not ext:
        ext = _DEFAULT_EXTENSIONS[asset_type]

    url_hash = hashlib.sha256(url.encode("utf-8")).hexdigest()[:8]
    unique_filename = f"{name[:_MAX_NAME_LENGTH]}_{url_hash}{ext}"

    return os.path.join(
        output_dir, get_domain_dir(url), "assets", asset_type.directory, unique_filename
    )


def ensure_dir(path: str) -> None:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists
    """
    os.makedirs(path, exist_ok=True)


def ensure_parent_dir(file_path: str) -> None:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path whose parent directory should exist
    """
    parent = os.path.dirname(file_path)
    if parent:
        ensure_dir(parent)


def get_relative_path(from_path: str, to_path: str) -> str:
    """
    Calculate the relative path from one file to another.

    Args:
        from_path: File containing the reference
        to_path: File being referenced

    Returns:
        Forward-slash path relative to the directory of from_path, starting
        with ``./`` unless it already starts with ``.``
    """
    from_dir = os.path.dirname(from_path)
    rel_path = os.path.relpath(to_path, from_dir).replace(os.sep, "/")
    return rel_path if rel_path.startswith(".") else "./" + rel_path
