"""
Asset Path Resolver: maps (asset kind, owning entity id, file name) to a canonical storage
path, and a stored path back to its kind and owner.

Layout:
    floors/{name}.glb                      floor models named after the floor ("ground-floor.glb")
    floors/{floor_id}.glb                  the model owned by a floor
    floors/{floor_id}/{file}               floor panorama images (ordered by file name)
    models/{file}                          other 3D models
    images/{file}
    environments/{file}                    EXR/HDR environment maps
    textures/{category}/{file}
    apartment-images/{apartment_id}/{file}
    uploads/{file}                         anything unrecognized

Pure functions only; nothing here touches a store.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from vista.errors import ValidationError
from vista.models.asset import AssetType

MODEL_EXTENSIONS = (".glb", ".gltf")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
# Floor image management also accepts these
FLOOR_IMAGE_EXTENSIONS = IMAGE_EXTENSIONS + (".gif", ".bmp")
ENVIRONMENT_EXTENSIONS = (".exr", ".hdr")

DEFAULT_ENVIRONMENT_PATH = "environments/default-sky.exr"
DEFAULT_FLOOR_TEXTURE_PATH = "textures/floors/default-floor.jpg"

_INVALID_SEGMENT = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class AssetKind(str, Enum):
    MODEL = "model"
    TEXTURE = "texture"
    ENVIRONMENT = "environment"
    IMAGE = "image"
    APARTMENT_IMAGE = "apartment-image"
    FLOOR_PANORAMA = "floor-panorama"

    @property
    def asset_type(self) -> AssetType:
        if self in (AssetKind.APARTMENT_IMAGE, AssetKind.FLOOR_PANORAMA):
            return AssetType.IMAGE
        return AssetType(self.value)


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    matches: Callable[[str], bool]
    kind: AssetKind


def is_floor_model_name(file_name: str) -> bool:
    lowered = file_name.lower()
    return "floor" in lowered and lowered.endswith(MODEL_EXTENSIONS)


# Evaluated top to bottom; the first match wins. No match means uploads/.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("floor-model", is_floor_model_name, AssetKind.MODEL),
    ClassificationRule("model", lambda name: name.lower().endswith(MODEL_EXTENSIONS), AssetKind.MODEL),
    ClassificationRule("image", lambda name: name.lower().endswith(IMAGE_EXTENSIONS), AssetKind.IMAGE),
    ClassificationRule(
        "environment", lambda name: name.lower().endswith(ENVIRONMENT_EXTENSIONS), AssetKind.ENVIRONMENT,
    ),
)


def classify(file_name: str) -> ClassificationRule | None:
    """Return the first rule matching an uploaded file's name, or None for the uploads/ fallback."""
    for rule in CLASSIFICATION_RULES:
        if rule.matches(file_name):
            return rule
    return None


def parse_kind(kind: "AssetKind | str | None") -> AssetKind | None:
    """Unknown kind strings resolve to None, which routes to uploads/."""
    if kind is None or isinstance(kind, AssetKind):
        return kind
    try:
        return AssetKind(kind.strip().lower())
    except ValueError:
        return None


def resolve_path(
    kind: "AssetKind | str | None",
    owner_id: str | None,
    file_name: str,
    category: str | None = None,
) -> str:
    """Canonical storage path for an asset.

    With ``kind=None`` the kind is inferred from the file name (see CLASSIFICATION_RULES).
    ``owner_id`` is the floor id for models and panoramas, the apartment id for apartment images.
    """
    _check_segment("file name", file_name)
    if owner_id is not None:
        _check_segment("owner id", owner_id)
    if category is not None:
        _check_segment("category", category)

    if kind is None:
        rule = classify(file_name)
        asset_kind = rule.kind if rule else None
    else:
        asset_kind = parse_kind(kind)

    if asset_kind is AssetKind.MODEL:
        if is_floor_model_name(file_name):
            return f"floors/{file_name.lower()}"
        if owner_id:
            return f"floors/{owner_id}{_extension(file_name) or '.glb'}"
        return f"models/{file_name}"
    if asset_kind is AssetKind.IMAGE:
        return f"images/{file_name}"
    if asset_kind is AssetKind.ENVIRONMENT:
        return f"environments/{file_name}"
    if asset_kind is AssetKind.TEXTURE:
        return f"textures/{category}/{file_name}" if category else f"textures/{file_name}"
    if asset_kind is AssetKind.APARTMENT_IMAGE:
        return f"apartment-images/{_require_owner(owner_id, asset_kind)}/{file_name}"
    if asset_kind is AssetKind.FLOOR_PANORAMA:
        return f"floors/{_require_owner(owner_id, asset_kind)}/{file_name}"
    return f"uploads/{file_name}"


def describe_path(path: str) -> tuple[AssetType | None, str | None]:
    """Inverse of resolve_path: the asset type and owning entity id of a stored path."""
    parts = path.strip("/").split("/")
    top, name = parts[0], parts[-1]

    if top == "floors":
        if len(parts) == 3:
            return AssetType.IMAGE, parts[1]
        if len(parts) == 2 and name.lower().endswith(MODEL_EXTENSIONS):
            owner = None if is_floor_model_name(name) else name.rsplit(".", 1)[0]
            return AssetType.MODEL, owner
    elif top == "apartment-images" and len(parts) == 3:
        return AssetType.IMAGE, parts[1]
    elif top == "models":
        return AssetType.MODEL, None
    elif top == "images":
        return AssetType.IMAGE, None
    elif top == "environments":
        return AssetType.ENVIRONMENT, None
    elif top == "textures":
        return AssetType.TEXTURE, None

    rule = classify(name)
    return (rule.kind.asset_type if rule else None), None


def file_name_of(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def with_name_prefix(path: str, prefix: str) -> str:
    """'floors/F1/a.jpg' + '1700000000000' -> 'floors/F1/1700000000000-a.jpg'"""
    head, _, name = path.rpartition("/")
    renamed = f"{prefix}-{name}"
    return f"{head}/{renamed}" if head else renamed


def floor_panorama_prefix(floor_id: str) -> str:
    _check_segment("owner id", floor_id)
    return f"floors/{floor_id}/"


def apartment_images_prefix(apartment_id: str) -> str:
    _check_segment("owner id", apartment_id)
    return f"apartment-images/{apartment_id}/"


def is_image_name(file_name: str, extensions: tuple[str, ...] = IMAGE_EXTENSIONS) -> bool:
    return file_name.lower().endswith(extensions)


# ---------- Helpers ----------

def _check_segment(label: str, value: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"The {label} must not be empty")
    if len(value) > 255:
        raise ValidationError(f"The {label} is longer than 255 characters")
    if value in (".", "..") or _INVALID_SEGMENT.search(value):
        raise ValidationError(f"The {label} '{value}' contains characters not allowed in a path segment")


def _require_owner(owner_id: str | None, kind: AssetKind) -> str:
    if not owner_id:
        raise ValidationError(f"Assets of kind '{kind.value}' need an owner id")
    return owner_id


def _extension(file_name: str) -> str:
    _, dot, ext = file_name.rpartition(".")
    return f".{ext.lower()}" if dot and ext else ""
