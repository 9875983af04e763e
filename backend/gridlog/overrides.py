"""
Effective per-slot values for display.

A grid slot may carry ``*_override`` fields that take precedence over the session's
Vitrobot settings, the grid info and the sample defaults. ``resolve`` walks one
precedence chain; ``resolve_slot`` applies every chain to one slot. Resolved values are
never persisted.
"""
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import GRID_BOX_SLOTS, MICROSCOPE_SLOTS, NO_COMMENTS, NOT_AVAILABLE, SLOT_NOT_USED
from .validation import is_empty, parse_decimal

_GRID_IDENTIFIER = re.compile(r"^([A-Za-z0-9]+)g(0?[1-9]|1[0-2])$")

_EMPTY: Mapping[str, Any] = {}


def resolve(*candidates: Any, default: Any = NOT_AVAILABLE) -> Any:
    """First candidate that is neither None nor "". Zero and False count as values."""
    for value in candidates:
        if not is_empty(value):
            return value
    return default


def is_flag_set(value: Any) -> bool:
    # Stored flags come back as True/False or 1/0 depending on the driver
    return value is True or (not isinstance(value, bool) and value == 1)


def is_slot_used(slot: Mapping[str, Any]) -> bool:
    return is_flag_set(slot.get("include_in_session"))


@dataclass(frozen=True)
class ResolvedSlot:
    slot_number: int
    used: bool
    trashed: bool = False
    shipped: bool = False
    prep_id: Optional[int] = None
    grid_type: Any = None
    grid_batch: Any = None
    blot_time: Any = None
    blot_force: Any = None
    volume: Any = None
    additives: Any = None
    sample_name: Any = None
    comments: Any = None

    @property
    def label(self) -> str:
        if not self.used:
            return SLOT_NOT_USED
        if self.trashed:
            return "Trashed"
        if self.shipped:
            return "Shipped"
        return "In use"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["label"] = self.label
        return data


def resolve_slot(
    slot: Mapping[str, Any],
    settings: Optional[Mapping[str, Any]] = None,
    grid_info: Optional[Mapping[str, Any]] = None,
    sample: Optional[Mapping[str, Any]] = None,
    slot_number: Optional[int] = None,
) -> ResolvedSlot:
    settings = settings or _EMPTY
    grid_info = grid_info or _EMPTY
    sample = sample or _EMPTY
    number = slot_number if slot_number is not None else slot.get("slot_number")

    if not is_slot_used(slot):
        return ResolvedSlot(slot_number=number, used=False)

    return ResolvedSlot(
        slot_number=number,
        used=True,
        trashed=is_flag_set(slot.get("trashed")),
        shipped=is_flag_set(slot.get("shipped")),
        prep_id=slot.get("prep_id"),
        grid_type=resolve(slot.get("grid_type_override"), slot.get("grid_type"), grid_info.get("grid_type")),
        grid_batch=resolve(slot.get("grid_batch_override"), slot.get("grid_batch"), grid_info.get("grid_batch")),
        blot_time=resolve(
            slot.get("blot_time_override"),
            slot.get("blot_time"),
            slot.get("blot_time_seconds"),
            settings.get("blot_time_seconds"),
        ),
        blot_force=resolve(slot.get("blot_force_override"), slot.get("blot_force"), settings.get("blot_force")),
        volume=resolve(
            slot.get("volume_ul_override"),
            slot.get("default_volume_ul"),
            settings.get("default_volume_ul"),
            sample.get("default_volume_ul"),
        ),
        additives=resolve(slot.get("additives_override"), slot.get("additives"), sample.get("additives")),
        sample_name=resolve(slot.get("sample_name"), sample.get("sample_name")),
        comments=resolve(slot.get("comments"), default=NO_COMMENTS),
    )


def _slot_index(slot: Mapping[str, Any]) -> Optional[int]:
    raw = resolve(slot.get("slot_number"), slot.get("slot"), default=None)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def resolve_grid_box(detail: Mapping[str, Any], slot_count: int = GRID_BOX_SLOTS) -> List[ResolvedSlot]:
    """
    One resolved entry per slot 1..slot_count of a session detail
    ``{"settings", "grid_info", "sample", "grids"}``; missing slots are unused.
    """
    by_slot = {}
    for slot in detail.get("grids") or []:
        index = _slot_index(slot)
        if index is not None and index not in by_slot:
            by_slot[index] = slot

    settings = detail.get("settings") or detail.get("vitrobot_settings")
    return [
        resolve_slot(
            by_slot.get(number, _EMPTY),
            settings=settings,
            grid_info=detail.get("grid_info"),
            sample=detail.get("sample"),
            slot_number=number,
        )
        for number in range(1, slot_count + 1)
    ]


def is_grid_box_trashed(grids: List[Mapping[str, Any]]) -> bool:
    """True when the box has used slots and every one of them is trashed."""
    used = [g for g in grids or [] if is_slot_used(g)]
    return bool(used) and all(is_flag_set(g.get("trashed")) for g in used)


def _differs(value: Any, default: Any) -> bool:
    left, right = parse_decimal(value), parse_decimal(default)
    if left is not None and right is not None:
        return left != right
    return str(value).strip() != ("" if default is None else str(default).strip())


def derive_overrides(
    form: Mapping[str, Any],
    settings: Optional[Mapping[str, Any]] = None,
    grid_info: Optional[Mapping[str, Any]] = None,
    sample: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Turn the effective values edited for one slot back into ``*_override`` fields.

    An override is kept only when the edited value differs from the default the slot
    would resolve to without it; otherwise the field is None.
    """
    settings = settings or _EMPTY
    grid_info = grid_info or _EMPTY
    sample = sample or _EMPTY

    blot_force = parse_decimal(form.get("blot_force"))
    blot_time = parse_decimal(form.get("blot_time_seconds"))
    volume = form.get("volume_ul")
    additives = form.get("additives")
    grid_batch = form.get("grid_batch")

    volume_default = resolve(sample.get("default_volume_ul"), settings.get("volume_ul"), default=None)

    return {
        "blot_force_override": (
            blot_force if blot_force is not None and _differs(blot_force, settings.get("blot_force")) else None
        ),
        "blot_time_override": (
            blot_time if blot_time is not None and _differs(blot_time, settings.get("blot_time_seconds")) else None
        ),
        "volume_ul_override": (
            str(volume).strip() if not is_empty(volume) and _differs(volume, volume_default) else None
        ),
        "additives_override": (
            additives if not is_empty(additives) and _differs(additives, sample.get("additives")) else None
        ),
        "grid_batch_override": (
            grid_batch if not is_empty(grid_batch) and _differs(grid_batch, grid_info.get("grid_batch")) else None
        ),
    }


SESSION_KEYS = ("user_name", "date", "grid_box_name", "loading_order", "puck_name", "puck_position")
SETTINGS_KEYS = (
    "humidity_percent", "temperature_c", "blot_force", "blot_time_seconds", "wait_time_seconds",
    "glow_discharge_applied",
)
GRID_INFO_KEYS = ("grid_type", "grid_batch", "glow_discharge_applied", "glow_discharge_current", "glow_discharge_time")
SLOT_KEYS = (
    "slot_number", "sample_id", "sample_name", "sample_concentration", "additives", "default_volume_ul",
    "volume_ul_override", "incubation_time_seconds", "blot_time_override", "blot_force_override",
    "grid_batch_override", "additives_override", "comments",
)


def _pick(record: Optional[Mapping[str, Any]], keys) -> Dict[str, Any]:
    record = record or _EMPTY
    return {key: record[key] for key in keys if key in record}


def slot_edit_payload(detail: Mapping[str, Any], slot_number: int, form: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Session payload for ``PUT /api/sessions/{id}`` that edits one slot of a stored box.

    ``detail`` is the body of ``GET /api/sessions/{id}``. The other used slots are sent
    back unchanged; the edited slot gets the overrides derived from ``form`` (see
    ``derive_overrides``) and the form's ``comments``.
    """
    settings = detail.get("settings") or _EMPTY
    grid_info = detail.get("grid_info") or _EMPTY

    grids = []
    for grid in detail.get("grids") or []:
        if not is_slot_used(grid):
            continue
        entry = _pick(grid, SLOT_KEYS)
        entry["include_in_session"] = True
        if _slot_index(grid) == slot_number:
            entry.update(derive_overrides(form, settings, grid_info, sample=grid))
            if "comments" in form:
                entry["comments"] = form["comments"]
        grids.append(entry)

    return {
        "session": _pick(detail.get("session"), SESSION_KEYS),
        "vitrobot_settings": _pick(settings, SETTINGS_KEYS),
        "grid_info": _pick(grid_info, GRID_INFO_KEYS),
        "grids": grids,
    }


def parse_grid_identifier(identifier: str) -> Optional[Tuple[str, int]]:
    """``"Box7g02"`` -> ``("Box7", 2)``; None when the label does not name a slot."""
    if not isinstance(identifier, str):
        return None
    m = _GRID_IDENTIFIER.match(identifier.strip())
    if not m:
        return None
    slot = int(m.group(2))
    return (m.group(1), slot) if 1 <= slot <= MICROSCOPE_SLOTS else None
