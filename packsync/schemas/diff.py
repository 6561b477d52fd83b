"""Diff schemas (AddonUpgrade, UpdateDiff, UpdatePreview)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, computed_field

from packsync.schemas.manifest import ConfigFileWithContent, Manifest


class AddonUpgrade(BaseModel):
    """An addon present in both manifests at different versions."""

    model_config = ConfigDict(frozen=True)

    name: str
    old_version: str
    new_version: str


class UpdateDiff(BaseModel):
    """Addon-level difference between an installed and a remote manifest.

    Attributes:
        removed: Names of installed addons absent from the new manifest
        upgraded: Addons whose version changed (named as installed)
        added: Names of addons only in the new manifest
    """

    model_config = ConfigDict(frozen=True)

    removed: list[str] = Field(default_factory=list)
    upgraded: list[AddonUpgrade] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_changes(self) -> bool:
        """True if any addon is removed, upgraded or added."""
        return bool(self.removed or self.upgraded or self.added)

    def upgrade_pairs(self) -> list[tuple[str, str]]:
        """Return ``(old_version, new_version)`` for each upgrade."""
        return [(u.old_version, u.new_version) for u in self.upgraded]


class UpdatePreview(BaseModel):
    """What the presentation layer shows before (or after) installing.

    ``old_manifest`` is None for a fresh install.
    """

    model_config = ConfigDict(frozen=True)

    old_manifest: Manifest | None = None
    new_manifest: Manifest
    diff: UpdateDiff
    config_files: list[ConfigFileWithContent] | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_changes(self) -> bool:
        """True if addons change or config files will be written."""
        return self.diff.has_changes or bool(self.config_files)
