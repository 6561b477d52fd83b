"""Manifest schemas (Addon, ConfigFile, Manifest, CachedBundle, MinecraftInstance).

Wire names follow the JSON the desktop client and the remote store
exchange (``addon_project_id``, ``fileNameOnDisk``, ``updateType``...);
Python attribute names are snake_case. Models accept either form on input
and serialize with the wire names (``by_alias=True``).

Anti-Pattern Compliance:
- AP-1.5: No mutable default arguments (uses Field(default_factory=list))
"""

from __future__ import annotations

import json
from collections.abc import Collection, Iterator, Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from packsync.core.exceptions import MalformedManifestError


# =============================================================================
# Enums
# =============================================================================

class UpdateKind(str, Enum):
    """What a published bundle updates."""

    FULL = "full"      # addons + config files
    CONFIG = "config"  # config files only


# Category order used for diffs and iteration
ADDON_CATEGORIES: tuple[str, ...] = ("mods", "resourcepacks", "shaderpacks", "datapacks")


# =============================================================================
# Addons and config files
# =============================================================================

class Addon(BaseModel):
    """A single installable addon (mod, resource pack, shader pack, datapack).

    Identity is ``project_id``: two addons with the same project id are the
    same addon, possibly at different versions.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project_id: int = Field(..., alias="addon_project_id")
    name: str = Field(..., alias="addon_name")
    version: str
    download_url: str = Field(..., alias="cdn_download_url")
    folder_path: str = Field(..., alias="mod_folder_path")
    file_name_on_disk: str = Field(..., alias="fileNameOnDisk")
    file_id: int | None = Field(default=None, alias="addon_file_id")
    web_site_url: str | None = Field(default=None, alias="webSiteURL")
    disabled: bool = False


class ConfigFile(BaseModel):
    """A config file listed by a manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str = Field(..., alias="filename")
    relative_path: str


class ConfigFileWithContent(ConfigFile):
    """A config file together with its downloaded content.

    Binary files carry their content as a base64 data URI.
    """

    content: str
    is_binary: bool = False


# =============================================================================
# Manifest
# =============================================================================

class Manifest(BaseModel):
    """Addon manifest of a modpack bundle.

    Example:
        >>> manifest = Manifest.from_json(text)
        >>> [addon.name for addon in manifest.all_addons()]
        ['JEI', 'Faithful']
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    update_kind: UpdateKind = Field(default=UpdateKind.FULL, alias="updateType")
    mods: list[Addon] = Field(default_factory=list)
    resourcepacks: list[Addon] = Field(default_factory=list)
    shaderpacks: list[Addon] = Field(default_factory=list)
    datapacks: list[Addon] = Field(default_factory=list)
    config_files: list[ConfigFile] = Field(default_factory=list)

    @classmethod
    def from_json(cls, text: str | bytes) -> Manifest:
        """Parse a manifest document.

        Raises:
            MalformedManifestError: If the text is not valid JSON or does not
                match the manifest schema
        """
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise MalformedManifestError(f"Invalid manifest: {e.error_count()} validation error(s)", cause=e) from e

    def to_json(self) -> str:
        """Serialize with wire names, the way the remote store expects."""
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2)

    def addons(self, category: str) -> list[Addon]:
        """Return the addons of one category.

        Raises:
            ValueError: If category is not one of ADDON_CATEGORIES
        """
        if category not in ADDON_CATEGORIES:
            raise ValueError(f"Unknown addon category '{category}'. Must be one of: {ADDON_CATEGORIES}")
        return getattr(self, category)

    def all_addons(self) -> Iterator[Addon]:
        """Yield every addon in ADDON_CATEGORIES order."""
        for category in ADDON_CATEGORIES:
            yield from self.addons(category)

    @classmethod
    def from_minecraft_instance(
        cls,
        text: str | bytes,
        disabled_files: Mapping[str, Collection[str]] | None = None,
    ) -> Manifest:
        """Build a manifest from a launcher ``minecraftinstance.json`` document.

        Entries missing any field an Addon needs are skipped. Config files
        are not part of the instance document and start empty.

        Args:
            text: The instance document
            disabled_files: Category -> file names disabled on disk

        Raises:
            MalformedManifestError: If the document does not match the
                instance schema
        """
        try:
            instance = MinecraftInstance.model_validate_json(text)
        except ValidationError as e:
            raise MalformedManifestError(
                f"Invalid instance document: {e.error_count()} validation error(s)", cause=e
            ) from e

        disabled_files = disabled_files or {}
        grouped: dict[str, list[Addon]] = {category: [] for category in ADDON_CATEGORIES}
        for installed in instance.installed_addons:
            category = installed.category
            if category is None:
                continue
            addon = installed.to_addon(disabled_files.get(category, ()))
            if addon is not None:
                grouped[category].append(addon)
        return cls(**grouped)


# =============================================================================
# Launcher instance document
# =============================================================================

def addon_category(category_name: str, folder_path: str) -> str:
    """Map a launcher category and install folder to a manifest category."""
    category = category_name.lower()
    folder = folder_path.lower()
    if "shader" in category or folder.endswith("shaderpacks"):
        return "shaderpacks"
    if "resource" in category or folder.endswith("resourcepacks"):
        return "resourcepacks"
    if "datapack" in category or folder.endswith("datapacks"):
        return "datapacks"
    return "mods"


class InstalledFile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    download_url: str | None = Field(default=None, alias="downloadUrl")


class CategorySection(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None


class InstalledAddon(BaseModel):
    """One ``installedAddons`` entry. Every field may be absent."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    addon_id: int | None = Field(default=None, alias="addonID")
    name: str | None = None
    mod_folder_path: str | None = Field(default=None, alias="modFolderPath")
    installed_file: InstalledFile | None = Field(default=None, alias="installedFile")
    category_section: CategorySection | None = Field(default=None, alias="categorySection")
    web_site_url: str | None = Field(default=None, alias="webSiteURL")

    @property
    def category(self) -> str | None:
        """Manifest category, or None without a category name or folder."""
        if self.category_section is None or self.category_section.name is None:
            return None
        if self.mod_folder_path is None:
            return None
        return addon_category(self.category_section.name, self.mod_folder_path)

    def to_addon(self, disabled_files: Collection[str] = ()) -> Addon | None:
        """Convert to an Addon, or None when a required field is missing.

        The installed file name serves as both version and on-disk name.
        """
        file = self.installed_file
        if file is None or file.id is None or file.file_name is None or file.download_url is None:
            return None
        if self.addon_id is None or self.name is None or self.mod_folder_path is None:
            return None
        return Addon(
            project_id=self.addon_id,
            name=self.name,
            version=file.file_name,
            download_url=file.download_url,
            folder_path=self.mod_folder_path,
            file_name_on_disk=file.file_name,
            file_id=file.id,
            web_site_url=self.web_site_url,
            disabled=file.file_name in disabled_files,
        )


class MinecraftInstance(BaseModel):
    """The parts of a launcher instance document a manifest is built from."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    installed_addons: list[InstalledAddon] = Field(..., alias="installedAddons")


# =============================================================================
# Cached bundle
# =============================================================================

class CachedBundle(BaseModel):
    """Value stored in the bundle cache under ``{repo}-{uuid}``.

    Attributes:
        manifest: Remote manifest of the bundle
        config_files: Downloaded config files, None until fetched
        downloaded_at: Epoch seconds of the download, if downloaded
        uploaded_at: Epoch seconds of the upload, if published from here
    """

    model_config = ConfigDict(frozen=True)

    manifest: Manifest
    config_files: list[ConfigFileWithContent] | None = None
    downloaded_at: float | None = None
    uploaded_at: float | None = None

    @property
    def is_complete(self) -> bool:
        """True when nothing remains to be fetched for this bundle."""
        return self.config_files is not None or not self.manifest.config_files
