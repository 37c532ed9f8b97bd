"""
Registry payload handling.

The portal answers with a flat XML document (``<root><nombres>..</nombres>...``)
that is not always well formed: stray control characters, a byte-order mark
and bare ampersands in names all occur in practice. Payloads are repaired
before parsing instead of being rejected.
"""

import codecs
import re
from typing import Dict, Optional, Union
from xml.etree import ElementTree as ET

from shared.errors import UpstreamBadResponseError
from ..domain.models import RegistryRecord


# upstream tag -> RegistryRecord attribute
TAG_FIELDS: Dict[str, str] = {
    "nombres": "names",
    "apellido1": "first_surname",
    "apellido2": "second_surname",
    "fecha_nac": "birth_date",
    "lugar_nac": "birth_place",
    "fecha_expiracion": "expiration_date",
    "sexo": "sex",
    "est_civil": "marital_status",
    "edad": "age",
    "cod_nacion": "nationality_code",
    "desc_nacionalidad": "nationality",
    "mun_ced": "municipality_code",
    "seq_ced": "id_sequence",
    "ocupacion": "occupation",
    "conyugue": "spouse",
    "cedula_conyugue": "spouse_id",
    "padre": "father",
    "madre": "mother",
    "cedula_vieja": "legacy_id",
    "pasaporte": "passport",
    "fotourl": "photo_path",
    "categoria": "category",
    "desc_categoria": "category_description",
    "estatus": "status",
    "cod_causa": "cause_code",
    "desc_causa_inhabilidad": "disability_cause",
    "desc_tipo_causa": "cause_type",
    "success": "success",
    "message": "message",
    "responsetime": "response_time",
}

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)")
_DECLARED_ENCODING = re.compile(rb"""^\s*(?:\xef\xbb\xbf)?\s*<\?xml[^>]*?encoding\s*=\s*["']([A-Za-z0-9._-]+)["']""")
_XML_DECLARATION = re.compile(r"^<\?xml[^>]*\?>")


def _resolve_encoding(content: bytes, encoding: Optional[str]) -> str:
    """BOM, then header charset, then the XML declaration, then UTF-8."""
    if content.startswith(codecs.BOM_UTF8):
        return "utf-8"
    candidates = [encoding]
    match = _DECLARED_ENCODING.match(content)
    if match:
        candidates.append(match.group(1).decode("ascii"))
    for candidate in candidates:
        if not candidate:
            continue
        try:
            return codecs.lookup(candidate).name
        except LookupError:
            continue
    return "utf-8"


def decode_payload(content: Union[bytes, str], encoding: Optional[str] = None) -> str:
    """Decode upstream bytes with their declared charset, replacing malformed sequences."""
    if isinstance(content, bytes):
        return content.decode(_resolve_encoding(content, encoding), errors="replace")
    return content


def sanitize_payload(text: Optional[str]) -> str:
    """Strip the BOM, XML declaration and control characters and escape bare ampersands.

    Input is already decoded text, so the declared encoding is dropped with
    the declaration.
    """
    if text is None:
        return ""
    text = text.strip()
    if text.startswith("\ufeff"):
        text = text[1:].lstrip()
    text = _XML_DECLARATION.sub("", text, count=1).lstrip()
    text = _CONTROL_CHARS.sub("", text)
    return _BARE_AMPERSAND.sub("&amp;", text)


def _local_name(tag: str) -> str:
    # drop any "{namespace}" prefix
    return tag.rsplit("}", 1)[-1].lower()


def parse_registry_payload(content: Union[bytes, str], encoding: Optional[str] = None) -> RegistryRecord:
    """Parse a registry answer into a RegistryRecord.

    Raises UpstreamBadResponseError when nothing usable is left after
    sanitizing, or when the document still does not parse.
    """
    text = sanitize_payload(decode_payload(content, encoding))
    if not text:
        raise UpstreamBadResponseError("Respuesta vacía del portal JCE")

    try:
        root = ET.fromstring(text)
    except (ET.ParseError, ValueError) as e:
        raise UpstreamBadResponseError(
            "Error procesando respuesta del portal JCE",
            details={"parse_error": str(e)}
        ) from e

    values: Dict[str, Optional[str]] = {}
    for element in root.iter():
        field = TAG_FIELDS.get(_local_name(element.tag))
        if field is not None and field not in values:
            values[field] = element.text

    return RegistryRecord(**values)
