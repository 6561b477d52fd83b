"""Manifest diff engine.

Pure functions: no I/O, never fails on well-formed manifests.

Per category (in ADDON_CATEGORIES order) addons are matched by project id:
- removed:  installed addons with no match in the new manifest
- upgraded: matched addons whose version differs
- added:    new addons with no match in the installed manifest
"""

from packsync.schemas.diff import AddonUpgrade, UpdateDiff, UpdatePreview
from packsync.schemas.manifest import ADDON_CATEGORIES, Addon, ConfigFileWithContent, Manifest


def index_by_project_id(addons: list[Addon]) -> dict[int, Addon]:
    """Build a project id index; the first occurrence of an id wins."""
    index: dict[int, Addon] = {}
    for addon in addons:
        index.setdefault(addon.project_id, addon)
    return index


def compute_diff(old: Manifest | None, new: Manifest) -> UpdateDiff:
    """Compare the installed manifest with a remote one.

    Args:
        old: Installed manifest, or None for a fresh install
        new: Remote manifest

    Returns:
        UpdateDiff with removed and added names and version upgrades
    """
    if old is None:
        return UpdateDiff(added=[addon.name for addon in new.all_addons()])

    removed: list[str] = []
    upgraded: list[AddonUpgrade] = []
    added: list[str] = []

    for category in ADDON_CATEGORIES:
        old_addons = old.addons(category)
        new_addons = new.addons(category)
        old_index = index_by_project_id(old_addons)
        new_index = index_by_project_id(new_addons)

        for addon in old_addons:
            match = new_index.get(addon.project_id)
            if match is None:
                removed.append(addon.name)
            elif match.version != addon.version:
                upgraded.append(
                    AddonUpgrade(
                        name=addon.name,
                        old_version=addon.version,
                        new_version=match.version,
                    )
                )

        added.extend(addon.name for addon in new_addons if addon.project_id not in old_index)

    return UpdateDiff(removed=removed, upgraded=upgraded, added=added)


def build_preview(
    old: Manifest | None,
    new: Manifest,
    config_files: list[ConfigFileWithContent] | None = None,
) -> UpdatePreview:
    """Package a diff with its manifests for the presentation layer."""
    return UpdatePreview(
        old_manifest=old,
        new_manifest=new,
        diff=compute_diff(old, new),
        config_files=config_files,
    )
