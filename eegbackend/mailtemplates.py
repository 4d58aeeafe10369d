"""Rendering of mail templates and collection of their inline pictures."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any

import jinja2

from eegbackend.eeg import InlinePicture

log = logging.getLogger(__name__)

_FALLBACK_TEMPLATES = "../public/templates"
_TEMPLATE_FILES = {"ACTIVATION": "AktivierungsEmail-templates.html"}

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"PK\x03\x04", "application/zip"),
)
_HTML_MARKERS = (b"<!doctype html", b"<html", b"<head", b"<body", b"<p", b"<div", b"<table")
_TEXT_CONTROLS = set(range(0x20)) - {0x09, 0x0A, 0x0C, 0x0D, 0x1B}


@dataclass
class Attachment:
    """A file sent along with a mail, inline or as a regular attachment."""

    type: str
    filename: str
    content: bytes
    mime_type: str
    content_id: str | None = None


def parse_template(template_file: str | os.PathLike[str], data: Mapping[str, Any]) -> str:
    """Render an HTML template file with ``data``, escaping inserted values."""
    source = Path(template_file).read_text(encoding="utf-8")
    environment = jinja2.Environment(autoescape=True, undefined=jinja2.StrictUndefined)
    return environment.from_string(source).render(dict(data))


def _slash_path(*parts: str) -> str:
    return PurePath(os.path.normpath(os.path.join(*parts))).as_posix()


def get_template_for(template_type: str, tenant: str, templates_root: str) -> str:
    """Path of the template of ``template_type`` for a tenant, in forward-slash form."""
    path = os.path.join(templates_root, tenant, "templates")
    if not os.path.exists(path):
        path = _FALLBACK_TEMPLATES
    try:
        filename = _TEMPLATE_FILES[template_type]
    except KeyError:
        raise ValueError("template not found") from None
    return _slash_path(path, filename)


def build_attachments(
    template_path: str | os.PathLike[str], pictures: Iterable[InlinePicture]
) -> list[Attachment]:
    """Read the inline pictures of a template; unreadable files are logged and left out."""
    attachments = []
    for picture in pictures:
        try:
            content = Path(template_path, picture.filepath).read_bytes()
        except OSError as exc:
            log.error("Read Attachment. Reason: %s", exc)
            continue
        attachments.append(
            Attachment(
                type="INLINE",
                filename=os.path.basename(picture.filepath),
                content=content,
                mime_type=detect_mime_type(content),
                content_id=picture.content_id,
            )
        )
    return attachments


def _is_text(data: bytes) -> bool:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return not any(ord(ch) in _TEXT_CONTROLS for ch in text)


def detect_mime_type(data: bytes) -> str:
    """Guess the media type of file content from its leading bytes."""
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:2] == b"BM" and len(data) >= 14:
        return "image/bmp"
    head = data[:512].lstrip().lower()
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:].lstrip()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    if head.startswith(_HTML_MARKERS):
        return "text/html; charset=utf-8"
    if head.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    if _is_text(data):
        return "text/plain; charset=utf-8"
    return "application/octet-stream"