"""
Response shaping.

Views are nested projections of the same record: ``basico`` is contained in
``personal``, which is contained in ``familiar``, which is contained in
``completo``.
"""

from typing import Dict, Optional, Tuple

from .models import PersonData, PhotoInfo, RegistryRecord, View, clean_value


BASIC_FIELDS = (
    "names",
    "first_surname",
    "second_surname",
    "birth_date",
    "sex",
)

PERSONAL_FIELDS = (
    "birth_place",
    "expiration_date",
    "age",
    "nationality_code",
    "municipality_code",
    "id_sequence",
    "occupation",
    "legacy_id",
    "passport",
    "category",
    "category_description",
    "cause_code",
    "disability_cause",
    "cause_type",
)

FAMILIAL_FIELDS = (
    "spouse",
    "spouse_id",
    "father",
    "mother",
)

PHOTO_UNAVAILABLE = "Foto no disponible para esta cédula"


def full_name(record: RegistryRecord) -> Optional[str]:
    """Space-joined names and surnames, blank parts omitted."""
    parts = [
        clean_value(record.names),
        clean_value(record.first_surname),
        clean_value(record.second_surname),
    ]
    joined = " ".join(part for part in parts if part)
    return joined or None


def build_photo_url(base_url: str, photo_path: str) -> str:
    """Join base URL and relative path with exactly one slash."""
    if photo_path.lower().startswith(("http://", "https://")):
        return photo_path
    return f"{base_url.rstrip('/')}/{photo_path.lstrip('/')}"


class ResponseShaper:
    """Projects a RegistryRecord into one of the named views."""

    def __init__(self, photo_base_url: str):
        self.photo_base_url = photo_base_url

    def shape(self, record: RegistryRecord, view: View,
              include_photo: bool) -> Tuple[PersonData, Optional[PhotoInfo]]:
        person = PersonData(**self._fields_for(record, view))
        photo = self.photo_info(record) if include_photo else None
        return person, photo

    def _fields_for(self, record: RegistryRecord, view: View) -> Dict[str, Optional[str]]:
        selected = list(BASIC_FIELDS)
        if view in (View.PERSONAL, View.FAMILIAL, View.COMPLETE):
            selected.extend(PERSONAL_FIELDS)
        if view in (View.FAMILIAL, View.COMPLETE):
            selected.extend(FAMILIAL_FIELDS)

        data: Dict[str, Optional[str]] = {name: clean_value(getattr(record, name)) for name in selected}
        data["full_name"] = full_name(record)
        data["marital_status"] = record.marital_status_description
        data["nationality"] = clean_value(record.nationality)
        data["status"] = record.status_description

        if view == View.COMPLETE:
            data["marital_status_code"] = clean_value(record.marital_status)
            data["status_code"] = clean_value(record.status)
            data["registry_response_time"] = clean_value(record.response_time)

        return data

    def photo_info(self, record: RegistryRecord) -> PhotoInfo:
        if not record.has_photo:
            return PhotoInfo.missing(PHOTO_UNAVAILABLE)
        return PhotoInfo.found(build_photo_url(self.photo_base_url, clean_value(record.photo_path)))
