from sqlalchemy import (
    Column, BigInteger, Integer, Float, Text, Date, Boolean, TIMESTAMP, ForeignKey, func,
)
from sqlalchemy.orm import relationship
from .db import Base

# BIGINT keys do not autoincrement on SQLite
ID = BigInteger().with_variant(Integer, "sqlite")


class GridSession(Base):
    """One grid-box preparation event."""
    __tablename__ = "sessions"
    session_id = Column(ID, primary_key=True)
    user_name = Column(Text, nullable=False, index=True)
    date = Column(Date, nullable=False)
    grid_box_name = Column(Text)
    loading_order = Column(Text)
    puck_name = Column(Text)
    puck_position = Column(Integer)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    settings = relationship("VitrobotSettings", uselist=False, cascade="all, delete-orphan")
    grid_info = relationship("GridInfo", uselist=False, cascade="all, delete-orphan")
    grid_preparations = relationship(
        "GridPreparation", cascade="all, delete-orphan", order_by="GridPreparation.slot_number"
    )


class VitrobotSettings(Base):
    __tablename__ = "vitrobot_settings"
    settings_id = Column(ID, primary_key=True)
    session_id = Column(ID, ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False)
    humidity_percent = Column(Float)
    temperature_c = Column(Float)
    blot_force = Column(Integer)
    blot_time_seconds = Column(Float)
    wait_time_seconds = Column(Float)
    glow_discharge_applied = Column(Boolean, default=False)


class GridInfo(Base):
    __tablename__ = "grids"
    grid_id = Column(ID, primary_key=True)
    session_id = Column(ID, ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False)
    grid_type = Column(Text)
    grid_batch = Column(Text)
    glow_discharge_applied = Column(Boolean, default=False)
    glow_discharge_current = Column(Float)
    glow_discharge_time = Column(Integer)


class Sample(Base):
    __tablename__ = "samples"
    sample_id = Column(ID, primary_key=True)
    sample_name = Column(Text, unique=True, nullable=False)
    sample_concentration = Column(Text)
    additives = Column(Text)
    buffer = Column(Text)
    default_volume_ul = Column(Text)


class GridType(Base):
    __tablename__ = "grid_types"
    grid_type_id = Column(ID, primary_key=True)
    grid_type_name = Column(Text, nullable=False)
    grid_batch = Column(Text)
    manufacturer = Column(Text)
    specifications = Column(Text)
    quantity = Column(Integer)
    marked_as_empty = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP, server_default=func.now())


class GridPreparation(Base):
    """One used slot of a grid box."""
    __tablename__ = "grid_preparations"
    prep_id = Column(ID, primary_key=True)
    session_id = Column(ID, ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False)
    slot_number = Column(Integer, nullable=False)
    sample_id = Column(ID, ForeignKey("samples.sample_id", ondelete="SET NULL"))
    grid_id = Column(ID, ForeignKey("grids.grid_id", ondelete="SET NULL"))
    volume_ul_override = Column(Text)
    incubation_time_seconds = Column(Float)
    blot_time_override = Column(Float)
    blot_force_override = Column(Float)
    grid_batch_override = Column(Text)
    additives_override = Column(Text)
    comments = Column(Text)
    include_in_session = Column(Boolean, default=True)
    trashed = Column(Boolean, default=False)
    trashed_at = Column(TIMESTAMP)
    shipped = Column(Boolean, default=False)
    shipped_at = Column(TIMESTAMP)

    sample = relationship("Sample")


class MicroscopeSession(Base):
    __tablename__ = "microscope_sessions"
    microscope_session_id = Column(ID, primary_key=True)
    date = Column(Date, nullable=False)
    microscope = Column(Text, nullable=False)
    overnight = Column(Boolean, default=False)
    clipped_at_microscope = Column(Boolean, default=False)
    issues = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    details = relationship(
        "MicroscopeDetail", cascade="all, delete-orphan", order_by="MicroscopeDetail.microscope_slot"
    )


class MicroscopeDetail(Base):
    """One of up to 12 grids loaded in a microscope session."""
    __tablename__ = "microscope_details"
    detail_id = Column(ID, primary_key=True)
    microscope_session_id = Column(
        ID, ForeignKey("microscope_sessions.microscope_session_id", ondelete="CASCADE"), nullable=False
    )
    microscope_slot = Column(Integer, nullable=False)
    grid_identifier = Column(Text, nullable=False)
    prep_id = Column(ID, ForeignKey("grid_preparations.prep_id", ondelete="SET NULL"))
    atlas = Column(Boolean, default=False)
    screened = Column(Text)
    collected = Column(Boolean, default=False)
    multigrid = Column(Boolean, default=False)
    px_size = Column(Float)
    magnification = Column(Integer)
    exposure_e = Column(Float)
    exposure_time = Column(Float)
    spot_size = Column(Integer)
    illumination_area = Column(Float)
    exp_per_hole = Column(Integer)
    images = Column(Integer)
    comments = Column(Text)
    nominal_defocus = Column(Text)
    objective = Column(Integer)
    slit_width = Column(Float)
    rescued = Column(Boolean, default=False)
    particle_number = Column(Integer)
    ice_quality = Column(Integer)
    grid_quality = Column(Integer)


class BlogPost(Base):
    """Internal lab note; addressed by a slug derived from its title."""
    __tablename__ = "blog_posts"
    id = Column(ID, primary_key=True)
    slug = Column(Text, unique=True, nullable=False, index=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    last_modified_by = Column(Text)
    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())


def to_dict(obj):
    """Column values of a mapped row; {} for None."""
    if obj is None:
        return {}
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}
