"""
Document and Format Configuration for the Sync System.

This module defines which documents are synchronized, in which export formats,
and where their renditions live on disk. Configuration comes either from a
YAML file or from environment variables holding JSON.
"""

import json
import mimetypes
import os
import re
import yaml
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union
from pydantic import BaseModel, Field, field_validator, model_validator

from ..config import (
    DEFAULT_OUTPUT_DIR, DEFAULT_FORMATS, DEFAULT_EXPORT_URL_TEMPLATE,
    DEFAULT_KEY_TEMPLATE, DEFAULT_FETCH_TIMEOUT,
    ENV_DOCUMENTS, ENV_FORMATS, ENV_OUTPUT_DIR, ENV_KEY_TEMPLATE,
)


DEFAULT_CONTENT_TYPE = 'application/octet-stream'

LANG_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')


class ExportFormat(str, Enum):
    """Export encodings offered by the document host."""
    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    ODT = "odt"
    MD = "md"
    EPUB = "epub"
    RTF = "rtf"
    HTML = "html"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def content_type(self) -> str:
        return FORMAT_CONTENT_TYPES[self]


FORMAT_CONTENT_TYPES: Dict[ExportFormat, str] = {
    ExportFormat.PDF: 'application/pdf',
    ExportFormat.DOCX: 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    ExportFormat.TXT: 'text/plain; charset=utf-8',
    ExportFormat.ODT: 'application/vnd.oasis.opendocument.text',
    ExportFormat.MD: 'text/markdown; charset=utf-8',
    ExportFormat.EPUB: 'application/epub+zip',
    ExportFormat.RTF: 'application/rtf',
    ExportFormat.HTML: 'text/html; charset=utf-8',
}


def content_type_for(path: Union[str, Path]) -> str:
    """
    Infer the content type of a local file from its extension.

    Known export formats use a fixed table, anything else goes through
    mimetypes and falls back to a generic binary type.
    """
    suffix = Path(path).suffix.lower().lstrip('.')
    try:
        return ExportFormat(suffix).content_type
    except ValueError:
        pass
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or DEFAULT_CONTENT_TYPE


class DocumentSource(BaseModel):
    """A logical document, exported in several formats."""
    lang: str = Field(..., description="Language tag, used as the filename stem")
    document_id: str = Field(..., description="Document identifier assigned by the host")

    @field_validator('lang')
    @classmethod
    def validate_lang(cls, v):
        if not LANG_PATTERN.match(v):
            raise ValueError(f'Invalid language tag: {v!r}')
        return v

    @field_validator('document_id')
    @classmethod
    def validate_document_id(cls, v):
        if not v.strip():
            raise ValueError('Document id must not be empty')
        return v.strip()


class RenditionPaths(BaseModel):
    """On-disk locations of the three roles of one (document, format) rendition."""
    output_directory: Path
    lang: str
    format: ExportFormat

    @property
    def candidate(self) -> Path:
        return self.output_directory / f"{self.lang}-new.{self.format.extension}"

    @property
    def current(self) -> Path:
        return self.output_directory / f"{self.lang}.{self.format.extension}"

    def archive(self, stamp: str) -> Path:
        return self.output_directory / f"{self.lang}-{stamp}.{self.format.extension}"

    def list_archives(self) -> List[Path]:
        """Archived renditions, oldest first."""
        pattern = re.compile(
            rf'^{re.escape(self.lang)}-\d{{6}}-\d{{4}}\.{re.escape(self.format.extension)}$'
        )
        if not self.output_directory.exists():
            return []
        return sorted(p for p in self.output_directory.iterdir() if pattern.match(p.name))


class SyncConfig(BaseModel):
    """Main configuration for a sync run."""
    documents: List[DocumentSource] = Field(..., description="Documents to synchronize")
    formats: List[ExportFormat] = Field(
        default_factory=lambda: [ExportFormat(f) for f in DEFAULT_FORMATS],
        description="Export formats, in processing order; the first one decides for the document"
    )
    output_directory: str = Field(default=DEFAULT_OUTPUT_DIR, description="Directory holding the renditions")
    export_url_template: str = Field(default=DEFAULT_EXPORT_URL_TEMPLATE, description="Export URL template")
    key_template: str = Field(default=DEFAULT_KEY_TEMPLATE, description="Remote object key template")
    convert_markdown: bool = Field(default=True, description="Render an HTML rendition next to the md export")
    fetch_timeout: int = Field(default=DEFAULT_FETCH_TIMEOUT, description="HTTP timeout in seconds")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log line format (text/json)")
    log_file: Optional[str] = Field(None, description="Log file path")

    @field_validator('formats')
    @classmethod
    def validate_formats(cls, v):
        if not v:
            raise ValueError('At least one export format is required')
        if len(set(v)) != len(v):
            raise ValueError('Export formats must not repeat')
        return v

    @field_validator('key_template')
    @classmethod
    def validate_key_template(cls, v):
        try:
            v.format(lang='xx', format='pdf')
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f'Invalid key template {v!r}: {e}')
        return v

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        if v not in ('text', 'json'):
            raise ValueError('log_format must be "text" or "json"')
        return v

    @model_validator(mode='after')
    def validate_documents(self):
        if not self.documents:
            raise ValueError('At least one document is required')
        langs = [d.lang for d in self.documents]
        if len(set(langs)) != len(langs):
            raise ValueError('Language tags must be unique')
        if self.convert_markdown and ExportFormat.HTML in self.formats and ExportFormat.MD in self.formats:
            raise ValueError('html cannot be exported while it is also rendered from md')
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'SyncConfig':
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Documents may be given as a plain lang -> id mapping
        if isinstance(data.get('documents'), dict):
            data['documents'] = _documents_from_mapping(data['documents'])

        return cls(**data)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Load configuration from environment variables.

        DOCSYNC_DOCUMENTS holds a JSON object mapping language tags to document
        ids, DOCSYNC_FORMATS an optional JSON list of formats.
        """
        environ = os.environ if environ is None else environ

        raw_documents = environ.get(ENV_DOCUMENTS)
        if not raw_documents:
            raise ValueError(f'Missing {ENV_DOCUMENTS} environment variable')
        documents = json.loads(raw_documents)
        if not isinstance(documents, dict):
            raise ValueError(f'{ENV_DOCUMENTS} must be a JSON object mapping language to document id')

        data: Dict[str, object] = {'documents': _documents_from_mapping(documents)}

        raw_formats = environ.get(ENV_FORMATS)
        if raw_formats:
            formats = json.loads(raw_formats)
            if not isinstance(formats, list):
                raise ValueError(f'{ENV_FORMATS} must be a JSON list of formats')
            data['formats'] = formats
        if environ.get(ENV_OUTPUT_DIR):
            data['output_directory'] = environ[ENV_OUTPUT_DIR]
        if environ.get(ENV_KEY_TEMPLATE):
            data['key_template'] = environ[ENV_KEY_TEMPLATE]

        return cls(**data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.dump_yaml())

    def dump_yaml(self) -> str:
        # Convert to dict with enum values as strings
        data = self.model_dump(mode='json')
        return yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)

    @property
    def output_path(self) -> Path:
        return Path(self.output_directory)

    def publish_formats(self) -> List[ExportFormat]:
        """Formats that may carry a candidate, including the HTML rendered from md."""
        formats = list(self.formats)
        if self.convert_markdown and ExportFormat.MD in formats:
            formats.insert(formats.index(ExportFormat.MD) + 1, ExportFormat.HTML)
        return formats

    def rendition_paths(self, lang: str, fmt: ExportFormat) -> RenditionPaths:
        return RenditionPaths(output_directory=self.output_path, lang=lang, format=fmt)

    def remote_key(self, lang: str, fmt: ExportFormat) -> str:
        return self.key_template.format(lang=lang, format=fmt.extension)


def _documents_from_mapping(mapping: Mapping[str, str]) -> List[Dict[str, str]]:
    return [{'lang': lang, 'document_id': document_id} for lang, document_id in mapping.items()]


def load_config(config_file: Optional[Union[str, Path]] = None) -> SyncConfig:
    """
    Load the sync configuration from a YAML file when given, otherwise from the environment.
    """
    if config_file:
        return SyncConfig.from_yaml(config_file)
    return SyncConfig.from_environment()
