"""Normalization of heterogeneous recipe payloads into the canonical record.

Payloads arrive as JSON or YAML documents, Markdown files or plain text, with
field names that vary from source to source. Everything is mapped onto
:class:`~src.schemas.recipe.NormalizedRecipe`; anything that cannot produce a
non-empty name is rejected. ``normalize`` never raises: failures come back as
an :class:`ItemNormalizationError` inside the result so the importer can count
the item and move on.
"""

import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import yaml
from pydantic import ValidationError

from src.models.enums import PayloadFormat
from src.schemas.recipe import NormalizedRecipe
from src.services.errors import ItemNormalizationError

NAME_KEYS = ("name", "title", "recipe_name", "recipename")
DESCRIPTION_KEYS = ("description", "summary", "intro")
PREP_KEYS = ("prep_time_minutes", "preptimeminutes", "prep_time", "preptime", "prep")
COOK_KEYS = ("cook_time_minutes", "cooktimeminutes", "cook_time", "cooktime", "cook")
SERVINGS_KEYS = ("servings", "serves", "yield", "recipeyield")
INGREDIENT_KEYS = ("ingredients", "recipeingredient", "ingredient_list")
DIRECTION_KEYS = ("directions", "instructions", "steps", "method", "recipeinstructions")
TAG_KEYS = ("tags", "keywords", "categories", "recipecategory")
RATING_KEYS = ("rating", "aggregaterating")

MAX_NAME_LENGTH = 255
MAX_TAG_LENGTH = 100

_ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$", re.IGNORECASE
)
_CLOCK = re.compile(r"^(\d+):(\d{1,2})$")
_HOURS = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours|hour|hrs|hr|h)(?![a-z])", re.IGNORECASE)
_MINUTES = re.compile(r"(\d+)\s*(?:minutes|minute|mins|min|m)(?![a-z])", re.IGNORECASE)
_INTEGER = re.compile(r"-?\d+")
_LIST_MARKER = re.compile(
    r"^\s*(?:[-*•+]|\d+[.)]|step\s*\d+\s*[:.)-]?)\s+", re.IGNORECASE
)
_TAG_SEPARATORS = re.compile(r"[,;]")

_FRONT_MATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
_MD_HEADING = re.compile(r"^(#{1,6})\s*(.+?)\s*#*\s*$")
_TEXT_HEADER = re.compile(
    r"^\s*(ingredients|directions|instructions|method|steps|preparation|tags|description)"
    r"\s*:?\s*$",
    re.IGNORECASE,
)
_TEXT_TITLE = re.compile(r"^\s*(?:title|name)\s*:\s*(.+)$", re.IGNORECASE)
_METADATA_LINE = re.compile(
    r"^\W*(prep(?:aration)?(?:\s+time)?|cook(?:ing)?(?:\s+time)?|servings|serves|yield|tags|rating)"
    r"\W*\s*:\s*\**\s*(.+?)\s*$",
    re.IGNORECASE,
)

_SECTION_ALIASES = {
    "ingredients": "ingredients",
    "directions": "directions",
    "instructions": "directions",
    "method": "directions",
    "steps": "directions",
    "preparation": "directions",
    "tags": "tags",
    "categories": "tags",
    "description": "description",
    "about": "description",
    "summary": "description",
}


@dataclass(frozen=True)
class RawPayload:
    """One candidate recipe as enumerated from a repository.

    ``content`` is either an already decoded mapping or the undecoded text
    of the file it came from. ``error`` marks a file that was found but could
    not be read, so it is still counted as a failed item.
    """

    origin: str
    format: PayloadFormat
    content: Any
    error: str | None = None


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of normalizing a single payload."""

    origin: str | None
    recipe: NormalizedRecipe | None = None
    error: ItemNormalizationError | None = None

    @property
    def ok(self) -> bool:
        return self.recipe is not None


def normalize(payload: RawPayload | Mapping[str, Any] | str) -> NormalizationResult:
    """Convert one raw payload into a canonical recipe."""
    origin = payload.origin if isinstance(payload, RawPayload) else None
    try:
        data = to_mapping(payload)
        recipe = build_recipe(data, origin)
    except ItemNormalizationError as e:
        return NormalizationResult(origin=origin, error=e)
    except ValidationError as e:
        return NormalizationResult(origin=origin, error=_from_validation_error(e))
    except (TypeError, ValueError, OverflowError) as e:
        return NormalizationResult(
            origin=origin, error=ItemNormalizationError(f"unreadable payload: {e}")
        )
    return NormalizationResult(origin=origin, recipe=recipe)


# --- Decoding ---


def load_structured(content: str, payload_format: PayloadFormat) -> Any:
    """Decode a JSON or YAML document."""
    try:
        if payload_format == PayloadFormat.JSON:
            return json.loads(content)
        return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ItemNormalizationError(f"invalid {payload_format.value} document: {e}") from e


def to_mapping(payload: RawPayload | Mapping[str, Any] | str) -> dict[str, Any]:
    """Decode any accepted payload shape into a flat field mapping."""
    if isinstance(payload, RawPayload):
        if payload.error:
            raise ItemNormalizationError(payload.error)
        content, payload_format = payload.content, payload.format
    elif isinstance(payload, Mapping):
        content, payload_format = payload, PayloadFormat.JSON
    elif isinstance(payload, str):
        content, payload_format = payload, _sniff_format(payload)
    else:
        raise ItemNormalizationError(f"unsupported payload type {type(payload).__name__}")

    if isinstance(content, str):
        if payload_format.is_structured:
            content = load_structured(content, payload_format)
        elif payload_format == PayloadFormat.MARKDOWN:
            content = parse_markdown(content)
        else:
            content = parse_text(content)

    if isinstance(content, list):
        raise ItemNormalizationError(
            f"document holds {len(content)} records where one recipe was expected"
        )
    if not isinstance(content, Mapping):
        raise ItemNormalizationError(
            f"expected a recipe object, got {type(content).__name__}"
        )
    return _unwrap(dict(content))


def _sniff_format(text: str) -> PayloadFormat:
    stripped = text.lstrip()
    if stripped.startswith(("{", "[")):
        return PayloadFormat.JSON
    if stripped.startswith(("#", "---")):
        return PayloadFormat.MARKDOWN
    return PayloadFormat.TEXT


def _unwrap(data: dict[str, Any]) -> dict[str, Any]:
    """Unwrap ``{"recipe": {...}}`` envelopes and JSON-LD graphs."""
    inner = data.get("recipe")
    if isinstance(inner, Mapping) and not _lookup(data, NAME_KEYS):
        return dict(inner)
    graph = data.get("@graph")
    if isinstance(graph, list):
        for node in graph:
            if isinstance(node, Mapping) and _is_recipe_type(node.get("@type")):
                return dict(node)
    return data


def _is_recipe_type(value: Any) -> bool:
    if isinstance(value, list):
        return "Recipe" in value
    return value == "Recipe"


# --- Canonical record ---


def build_recipe(data: Mapping[str, Any], origin: str | None = None) -> NormalizedRecipe:
    """Map a decoded field mapping onto the canonical recipe."""
    name = _clean_text(_lookup(data, NAME_KEYS))
    if not name:
        raise ItemNormalizationError("missing required field 'name'", field="name")
    if len(name) > MAX_NAME_LENGTH:
        raise ItemNormalizationError(
            f"name exceeds {MAX_NAME_LENGTH} characters", field="name"
        )

    return NormalizedRecipe(
        name=name,
        description=_clean_text(_lookup(data, DESCRIPTION_KEYS)) or None,
        prep_time_minutes=parse_minutes(_lookup(data, PREP_KEYS)),
        cook_time_minutes=parse_minutes(_lookup(data, COOK_KEYS)),
        servings=parse_servings(_lookup(data, SERVINGS_KEYS)),
        ingredients=coerce_lines(_lookup(data, INGREDIENT_KEYS), "ingredients"),
        directions=coerce_lines(_lookup(data, DIRECTION_KEYS), "directions"),
        tags=coerce_tags(_lookup(data, TAG_KEYS)),
        rating=parse_rating(_lookup(data, RATING_KEYS)),
        original_filename=origin,
    )


def _lookup(data: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first non-empty value among case-insensitive key aliases."""
    lowered = {str(k).lower(): v for k, v in data.items()}
    for key in keys:
        value = lowered.get(key)
        if value is not None and value != "" and value != []:
            return value
    return None


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v) for v in value if v is not None)
    return " ".join(str(value).split())


def _from_validation_error(error: ValidationError) -> ItemNormalizationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ItemNormalizationError(f"invalid field '{field}': {first.get('msg')}", field=field)


# --- Field parsers ---


def parse_minutes(value: Any) -> int | None:
    """Parse a duration into whole minutes; unparseable or negative values give None.

    Accepts plain numbers (minutes), ``"15 minutes"``, ``"1 hr 30 min"``,
    ``"1:30"`` and ISO-8601 durations such as ``"PT1H30M"``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        minutes = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        iso = _ISO_DURATION.match(text)
        clock = _CLOCK.match(text)
        if iso and any(iso.groups()):
            days, hours, mins, secs = (int(g) if g else 0 for g in iso.groups())
            minutes = days * 1440 + hours * 60 + mins + secs // 60
        elif clock:
            minutes = int(clock.group(1)) * 60 + int(clock.group(2))
        else:
            hours_match = _HOURS.search(text)
            mins_match = _MINUTES.search(text)
            if hours_match or mins_match:
                minutes = 0
                if hours_match:
                    minutes += int(float(hours_match.group(1)) * 60)
                if mins_match:
                    minutes += int(mins_match.group(1))
            else:
                number = _INTEGER.search(text)
                if not number:
                    return None
                minutes = int(number.group())
    else:
        return None
    return minutes if minutes >= 0 else None


def parse_servings(value: Any) -> int | None:
    """Parse servings such as ``4``, ``"4 servings"`` or ``"4-6"``; must be positive."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        servings = int(value)
    elif isinstance(value, str):
        number = _INTEGER.search(value)
        if not number:
            return None
        servings = int(number.group())
    else:
        return None
    return servings if servings > 0 else None


def parse_rating(value: Any) -> float | None:
    """Parse a rating in [0, 5] from a number, string or rating object."""
    if isinstance(value, Mapping):
        value = _lookup(value, ("ratingvalue", "value", "average"))
    if value is None or isinstance(value, bool):
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    return rating if 0 <= rating <= 5 else None


def coerce_lines(value: Any, field: str) -> list[str]:
    """Flatten a text blob, list of strings or list of objects into ordered lines."""
    if value is None:
        return []
    if isinstance(value, str):
        return _split_lines(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return [str(value)]
    if isinstance(value, Mapping):
        nested = value.get("itemListElement")
        if nested is not None:
            return coerce_lines(nested, field)
        line = _line_from_mapping(value)
        if line:
            return [line]
        # Grouped sections, e.g. {"Dough": [...], "Filling": [...]}
        lines: list[str] = []
        for group in value.values():
            lines.extend(coerce_lines(group, field))
        return lines
    if isinstance(value, (list, tuple)):
        lines = []
        for item in value:
            if isinstance(item, str):
                line = _strip_marker(item)
                if line:
                    lines.append(line)
            else:
                lines.extend(coerce_lines(item, field))
        return lines
    raise ItemNormalizationError(
        f"unsupported value for '{field}' of type {type(value).__name__}", field=field
    )


def _split_lines(text: str) -> list[str]:
    return [line for line in (_strip_marker(raw) for raw in text.splitlines()) if line]


def _strip_marker(line: str) -> str:
    return " ".join(_LIST_MARKER.sub("", line, count=1).split())


def _line_from_mapping(item: Mapping[str, Any]) -> str:
    """Render a structured ingredient or step object as one line."""
    text = _clean_text(_lookup(item, ("text", "step", "instruction", "line", "original")))
    if text:
        return _strip_marker(text)
    quantity = _clean_text(_lookup(item, ("quantity", "amount", "qty")))
    unit = _clean_text(_lookup(item, ("unit", "units")))
    name = _clean_text(_lookup(item, ("name", "item", "ingredient", "food")))
    note = _clean_text(_lookup(item, ("note", "notes", "preparation", "comment")))
    line = " ".join(part for part in (quantity, unit, name) if part)
    if note:
        line = f"{line}, {note}" if line else note
    return line


def coerce_tags(value: Any) -> list[str]:
    """De-duplicate tags case-sensitively, preserving first-seen order."""
    if value is None:
        return []
    if isinstance(value, str):
        candidates: Iterable[Any] = _TAG_SEPARATORS.split(value)
    elif isinstance(value, (list, tuple, set)):
        candidates = value
    else:
        candidates = [value]

    tags: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        if isinstance(candidate, Mapping):
            candidate = _lookup(candidate, ("name", "tag", "label"))
        tag = _clean_text(candidate)[:MAX_TAG_LENGTH]
        if tag and tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


# --- Text formats ---


def parse_markdown(text: str) -> dict[str, Any]:
    """Parse a Markdown recipe with optional YAML front matter.

    The first level-one heading is the name; ``##`` headings open the
    ingredient, direction and tag sections. Front matter fields take
    precedence over the body.
    """
    data: dict[str, Any] = {}
    front = _FRONT_MATTER.match(text)
    if front:
        try:
            meta = yaml.safe_load(front.group(1))
        except yaml.YAMLError as e:
            raise ItemNormalizationError(f"invalid front matter: {e}") from e
        if isinstance(meta, Mapping):
            data.update(meta)
        text = text[front.end():]

    def detect(line: str) -> tuple[str, str] | None:
        heading = _MD_HEADING.match(line.strip())
        if not heading:
            return None
        label = heading.group(2).strip()
        if len(heading.group(1)) == 1:
            return "title", label
        return _SECTION_ALIASES.get(label.lower().rstrip(":").strip(), ""), ""

    _merge_sections(data, _collect_sections(text.splitlines(), detect, title_first_line=False))
    return data


def parse_text(text: str) -> dict[str, Any]:
    """Parse a plain-text recipe: the first line names it, ``Ingredients:`` style headers follow."""

    def detect(line: str) -> tuple[str, str] | None:
        header = _TEXT_HEADER.match(line)
        if not header:
            return None
        return _SECTION_ALIASES.get(header.group(1).lower(), ""), ""

    data: dict[str, Any] = {}
    _merge_sections(data, _collect_sections(text.splitlines(), detect, title_first_line=True))
    return data


def _collect_sections(lines, detect, title_first_line: bool) -> dict[str, Any]:
    title: str | None = None
    current: str | None = None
    preamble: list[str] = []
    metadata: dict[str, str] = {}
    sections: dict[str, list[str]] = {}

    for line in lines:
        found = detect(line)
        if found is not None:
            kind, label = found
            if kind == "title":
                if title is None:
                    title = label
                    current = None
                continue
            current = kind
            continue
        if title is None and title_first_line and current is None and line.strip():
            explicit = _TEXT_TITLE.match(line)
            title = explicit.group(1).strip() if explicit else line.strip()
            continue
        if current is None:
            meta = _METADATA_LINE.match(line)
            if meta:
                metadata[_metadata_key(meta.group(1))] = meta.group(2)
            else:
                preamble.append(line)
        elif current:
            sections.setdefault(current, []).append(line)

    return {"title": title, "preamble": preamble, "metadata": metadata, "sections": sections}


def _metadata_key(label: str) -> str:
    label = label.lower()
    if label.startswith("prep"):
        return "prep_time"
    if label.startswith("cook"):
        return "cook_time"
    if label in ("servings", "serves", "yield"):
        return "servings"
    return label


def _merge_sections(data: dict[str, Any], parsed: dict[str, Any]) -> None:
    """Fill fields missing from ``data`` with what the body provided."""
    if parsed["title"] and _lookup(data, NAME_KEYS) is None:
        data.setdefault("name", parsed["title"])
    for key, value in parsed["metadata"].items():
        data.setdefault(key, value)
    sections = parsed["sections"]
    description = "\n".join(sections.pop("description", [])).strip()
    if not description:
        description = "\n".join(parsed["preamble"]).strip()
    if description:
        data.setdefault("description", description)
    for key, lines in sections.items():
        blob = "\n".join(lines)
        if key == "tags":
            data.setdefault("tags", [t for line in _split_lines(blob) for t in coerce_tags(line)])
        else:
            data.setdefault(key, blob)
