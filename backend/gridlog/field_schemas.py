"""
Declarative field schemas for every record kind the API accepts.

Each table maps field names to an immutable ``FieldSchema``. The validator and the
sanitizer in ``gridlog.validation`` dispatch on ``FieldSchema.type``.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from .errors import UnknownTableError


class FieldType(str, Enum):
    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"


@dataclass(frozen=True)
class FieldSchema:
    type: FieldType
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    precision: Optional[int] = None


def _string(max_length=None, min_length=None, required=False):
    return FieldSchema(FieldType.STRING, required=required, min_length=min_length, max_length=max_length)


def _text(max_length=None, required=False):
    return FieldSchema(FieldType.TEXT, required=required, max_length=max_length)


def _integer(min=None, max=None, required=False):
    return FieldSchema(FieldType.INTEGER, required=required, min=min, max=max)


def _decimal(min=None, max=None, precision=None, required=False):
    return FieldSchema(FieldType.DECIMAL, required=required, min=min, max=max, precision=precision)


_BOOLEAN = FieldSchema(FieldType.BOOLEAN)


TableSchema = Mapping[str, FieldSchema]

TABLE_SCHEMAS: Mapping[str, TableSchema] = MappingProxyType({
    "sessions": MappingProxyType({
        "user_name": _string(max_length=255, min_length=1, required=True),
        "date": FieldSchema(FieldType.DATE, required=True),
        "grid_box_name": _string(max_length=255),
        "loading_order": _string(max_length=255),
        "puck_name": _string(max_length=255),
        "puck_position": _integer(min=1, max=12),
    }),
    "vitrobot_settings": MappingProxyType({
        "humidity_percent": _decimal(min=0, max=100, precision=2),
        "temperature_c": _decimal(min=-50, max=50, precision=2),
        "blot_force": _integer(min=-100, max=100),
        "blot_time_seconds": _decimal(min=0, max=60, precision=2),
        "wait_time_seconds": _decimal(min=0, max=300, precision=2),
        "glow_discharge_applied": _BOOLEAN,
    }),
    "grids": MappingProxyType({
        "grid_type": _string(max_length=255, required=True),
        "grid_batch": _string(max_length=100),
        "glow_discharge_applied": _BOOLEAN,
        "glow_discharge_current": _decimal(min=0, max=100, precision=2),
        "glow_discharge_time": _integer(min=0, max=3600),
    }),
    "grid_preparations": MappingProxyType({
        "slot_number": _integer(min=1, max=48),
        "volume_ul_override": _string(max_length=200),
        "incubation_time_seconds": _decimal(min=0, max=9999.99, precision=2),
        "blot_time_override": _decimal(min=0, max=99.99, precision=2),
        "blot_force_override": _decimal(min=-99.99, max=99.99, precision=2),
        "grid_batch_override": _string(max_length=100),
        "additives_override": _string(max_length=100),
        "comments": _text(max_length=1000),
        "include_in_session": _BOOLEAN,
    }),
    "samples": MappingProxyType({
        "sample_name": _string(max_length=255, min_length=1, required=True),
        "sample_concentration": _string(max_length=100),
        "additives": _text(max_length=1000),
        "buffer": _string(max_length=500),
        "default_volume_ul": _string(max_length=200),
    }),
    "grid_types": MappingProxyType({
        "grid_type_name": _string(max_length=255, min_length=1, required=True),
        "grid_batch": _string(max_length=255),
        "manufacturer": _string(max_length=255),
        "specifications": _text(max_length=1000),
        "quantity": _integer(min=0),
    }),
    "microscope_sessions": MappingProxyType({
        "date": FieldSchema(FieldType.DATE, required=True),
        "microscope": _string(max_length=255, min_length=1, required=True),
        "overnight": _BOOLEAN,
        "clipped_at_microscope": _BOOLEAN,
        "issues": _text(max_length=1000),
    }),
    "microscope_details": MappingProxyType({
        "microscope_slot": _integer(min=1, max=12, required=True),
        "grid_identifier": _string(max_length=255, min_length=1, required=True),
        "prep_id": _integer(min=1),
        "atlas": _BOOLEAN,
        "screened": _string(max_length=255),
        "collected": _BOOLEAN,
        "multigrid": _BOOLEAN,
        "px_size": _decimal(min=0, max=100, precision=3),
        "magnification": _integer(min=0, max=10000000),
        "exposure_e": _decimal(min=0, max=1000, precision=2),
        "exposure_time": _decimal(min=0, max=1000, precision=2),
        "spot_size": _integer(min=0, max=20),
        "illumination_area": _decimal(min=0, max=1000, precision=2),
        "exp_per_hole": _integer(min=0, max=1000),
        "images": _integer(min=0),
        "comments": _text(max_length=1000),
        "nominal_defocus": _string(max_length=255),
        "objective": _integer(min=0, max=1000),
        "slit_width": _decimal(min=0, max=1000, precision=2),
        "rescued": _BOOLEAN,
        "particle_number": _integer(min=0),
        "ice_quality": _integer(min=0, max=5),
        "grid_quality": _integer(min=0, max=5),
    }),
    "blog_posts": MappingProxyType({
        "title": _string(max_length=255, min_length=1, required=True),
        "content": _text(required=True),
        "category": _string(max_length=100, min_length=1, required=True),
        "author": _string(max_length=255, min_length=1, required=True),
        "last_modified_by": _string(max_length=255),
    }),
})


def get_table_schema(table_name: str) -> TableSchema:
    try:
        return TABLE_SCHEMAS[table_name]
    except KeyError:
        raise UnknownTableError(table_name) from None
