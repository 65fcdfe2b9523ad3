from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Location
from ..models.catalog import LOCATION_TYPES, LOCATION_TYPE_STORE
from ..permissions import ActorContext, require
from ..validation import require_text
from .concurrency import run_with_retry


def load_location(location_id: int) -> Location:
    """Fetch a location or raise NotFound. Internal lookup, no authorization."""
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFound(f"Location {location_id} not found", details={"location_id": location_id})
    return location


def create_location(actor: ActorContext, name: str, type: str) -> Location:
    require(actor, "MANAGE_LOCATIONS")
    name = require_text(name, "name", max_length=128)
    location_type = (type or "").strip().lower()
    if location_type not in LOCATION_TYPES:
        raise ValidationError("type must be 'store' or 'shop'", details={"type": type})

    def _op():
        location = Location(name=name, type=location_type)
        db.session.add(location)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Location '{name}' already exists", details={"name": name})
        return location

    return run_with_retry(_op)


def get_location(actor: ActorContext, location_id: int) -> Location:
    require(actor, "VIEW_LOCATIONS")
    return load_location(location_id)


def list_locations(actor: ActorContext, type: str | None = None) -> list[Location]:
    require(actor, "VIEW_LOCATIONS")
    q = db.session.query(Location)
    if type:
        q = q.filter(Location.type == type.strip().lower())
    return q.order_by(Location.type.asc(), Location.name.asc()).all()


def get_store_location() -> Location:
    """
    The designated store that wholesale orders are fulfilled from.

    STORE_LOCATION_ID wins when set; otherwise the single store-typed
    location. Zero or several candidates is a configuration problem.
    """
    configured = current_app.config.get("STORE_LOCATION_ID") if has_app_context() else None
    if configured:
        location = db.session.get(Location, int(configured))
        if location is None:
            raise NotFound(
                f"Configured store location {configured} not found",
                details={"location_id": configured},
            )
        return location

    stores = (
        db.session.query(Location)
        .filter(Location.type == LOCATION_TYPE_STORE)
        .order_by(Location.id.asc())
        .limit(2)
        .all()
    )
    if len(stores) != 1:
        raise NotFound(
            "No designated store: set STORE_LOCATION_ID or keep exactly one store location",
            details={"store_candidates": len(stores)},
        )
    return stores[0]
