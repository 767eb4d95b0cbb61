"""
Template storage on the local filesystem.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import List, Optional

from studio.config import settings
from studio.models.template import TEMPLATE_FILE_SUFFIX, Template, TemplateSummary
from studio.services.templates import sanitize_template_name, template_codec

logger = logging.getLogger(__name__)


class TemplateStorageError(Exception):
    """Error while reading or writing a template file."""

    def __init__(self, code: str, message: str, template_path: Optional[str] = None):
        self.code = code
        self.message = message
        self.template_path = template_path
        super().__init__(message)


class TemplateStore:
    """Stores templates as ``<name>.imagor.json`` files under a root folder."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = base_dir or settings.templates_dir

    def _resolve(self, relative_path: str) -> Path:
        """Map a storage-relative path to a file under base_dir, refusing escapes."""
        parts = PurePosixPath(relative_path.strip("/")).parts
        if any(part in ("..", "") for part in parts):
            raise TemplateStorageError("INVALID_PATH", f"Invalid template path: {relative_path}")
        return self.base_dir.joinpath(*parts)

    def template_path(self, name: str, save_path: str = "") -> str:
        """
        Storage-relative path for a template name.

        Raises:
            TemplateStorageError: If the name sanitizes to nothing
        """
        stem = sanitize_template_name(name)
        if not stem:
            raise TemplateStorageError("INVALID_NAME", "Invalid template name")
        folder = save_path.strip("/")
        filename = f"{stem}{TEMPLATE_FILE_SUFFIX}"
        return f"{folder}/{filename}" if folder else filename

    def save_template(self, template: Template, save_path: str = "", overwrite: bool = False) -> str:
        """
        Write a template file. Returns its storage-relative path.

        Raises:
            TemplateStorageError: On an invalid name/path, or if the file
                exists and ``overwrite`` is False
        """
        relative = self.template_path(template.name, save_path)
        path = self._resolve(relative)

        if path.exists():
            if not overwrite:
                logger.debug(f"Template already exists, overwrite not allowed: {relative}")
                raise TemplateStorageError("TEMPLATE_EXISTS", "Template already exists", relative)
            logger.debug(f"Template already exists, overwriting: {relative}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(template_codec.dumps(template), encoding="utf-8")

        logger.info(f"Saved template '{template.name}' as {relative}")
        return relative

    def read_template(self, template_path: str) -> str:
        """
        Read the raw JSON text of a stored template.

        Raises:
            TemplateStorageError: If the file does not exist
        """
        path = self._resolve(template_path)
        if not path.name.endswith(TEMPLATE_FILE_SUFFIX) or not path.is_file():
            raise TemplateStorageError("TEMPLATE_NOT_FOUND", f"Template not found: {template_path}", template_path)
        return path.read_text(encoding="utf-8")

    def list_templates(self, folder: str = "") -> List[TemplateSummary]:
        """List readable templates under ``folder`` (recursively), sorted by path."""
        root = self._resolve(folder) if folder.strip("/") else self.base_dir
        if not root.is_dir():
            return []

        summaries = []
        for path in sorted(root.rglob(f"*{TEMPLATE_FILE_SUFFIX}")):
            relative = path.relative_to(self.base_dir).as_posix()
            result = template_codec.load(path.read_text(encoding="utf-8"))
            if not result.success:
                logger.warning(f"Skipping unreadable template {relative}")
                continue
            template = result.template
            summaries.append(TemplateSummary(
                template_path=relative,
                name=template.name,
                description=template.description,
                dimension_mode=template.dimension_mode,
                created_at=template.metadata.created_at,
            ))
        return summaries


# Global store instance
template_store = TemplateStore()
