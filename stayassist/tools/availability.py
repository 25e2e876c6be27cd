"""LangChain tools for rental availability and booking links.

Each tool forwards to the availability MCP server through the shared
:class:`~stayassist.services.mcp_client.McpClient` and returns a readable
string the LLM can relay to the guest.  A failed call never raises out of a
tool; the guest gets an apology and the error is logged.
"""

from __future__ import annotations

import json
import logging
from datetime import date, timedelta

from langchain_core.tools import tool
from pydantic import ValidationError

from stayassist.models import Property
from stayassist.services.errors import ToolCallFailed
from stayassist.services.mcp_client import get_mcp_client

logger = logging.getLogger(__name__)

# Fallback contact offered to guests when the availability service is down
FALLBACK_PHONE = "0758112151"


def _format_period(period) -> str:
    first, last = period[0].to_date(), period[-1].to_date()
    if first == last:
        return first.strftime("%a %d %b %Y")
    return f"{first.strftime('%a %d %b')} – {last.strftime('%a %d %b %Y')}"


def _describe_property(prop: Property) -> list[str]:
    lines = [f"🏠 {prop.name} (property {prop.beds24_prop_id})"]
    if not prop.availabilities:
        lines.append("    No free dates.")
    for room in prop.availabilities:
        periods = [p for p in room.availability if p]
        label = f"{prop.room_name(room.room_id)} [room {room.room_id}]"
        if not periods:
            lines.append(f"  • {label}: fully booked")
            continue
        lines.append(f"  • {label}: " + "; ".join(_format_period(p) for p in periods))
    return lines


def _unavailable(action: str, exc: ToolCallFailed) -> str:
    return (
        f"Sorry, I couldn't {action} right now. Error: {exc}. "
        f"Please try again in a moment, or call us on {FALLBACK_PHONE}."
    )


# ── Tool 1: Availability overview ───────────────────────────────────


@tool
def get_all_availability_30_days(refresh: bool = False) -> str:
    """Retrieve availability for all properties and rooms for the next 30 days.

    Use this first for general availability questions, or when the guest
    has not picked a property or dates yet.

    Args:
        refresh: Set to true to force fresh data instead of cached data.
    """
    try:
        raw = get_mcp_client().call_tool("get_all_availability_30_days", {"refresh": refresh})
    except ToolCallFailed as e:
        logger.error("Failed to fetch 30-day availability: %s", e)
        return _unavailable("check availability", e)

    if not isinstance(raw, list):
        # Already summarised server-side
        return json.dumps(raw, ensure_ascii=False)

    try:
        properties = [Property.model_validate(item) for item in raw]
    except ValidationError as e:
        logger.error("Availability payload failed validation: %s", e)
        return "Sorry, the availability service returned data I couldn't read. Please try again."

    if not properties:
        return "No properties reported any availability for the next 30 days."

    lines = [f"Availability for the next 30 days ({len(properties)} properties):\n"]
    for prop in properties:
        lines.extend(_describe_property(prop))
    return "\n".join(lines)


# ── Tool 2: One property, custom dates ──────────────────────────────


@tool
def get_property_availability_by_dates(
    property_name: str,
    checkin_date: str,
    checkout_date: str,
    refresh: bool = True,
) -> str:
    """Get availability for one property within a check-in/check-out range.

    Use this when the guest names a property AND gives dates.

    Args:
        property_name: Property name (e.g. "Apartamente", "Casa Pescarului",
                       "Vila Franceza", "Casa Gabriela").
        checkin_date: Check-in date in YYYY-MM-DD format.
        checkout_date: Check-out date in YYYY-MM-DD format.
        refresh: Force fresh data generation (default true).
    """
    args = {
        "propertyName": property_name,
        "checkinDate": checkin_date,
        "checkoutDate": checkout_date,
        "refresh": refresh,
    }
    try:
        result = get_mcp_client().call_tool("get_property_availability_by_dates", args)
    except ToolCallFailed as e:
        logger.error("Failed to fetch availability for %s: %s", property_name, e)
        return _unavailable(f"check availability for {property_name}", e)

    if not isinstance(result, dict) or "propertyData" not in result:
        return json.dumps(result, ensure_ascii=False)

    try:
        prop = Property.model_validate(result["propertyData"])
    except ValidationError as e:
        logger.error("Property payload for %s failed validation: %s", property_name, e)
        return "Sorry, the availability service returned data I couldn't read. Please try again."

    lines = [f"Availability for {prop.name} from {checkin_date} to {checkout_date}:\n"]
    lines.extend(_describe_property(prop))
    return "\n".join(lines)


# ── Tool 3: Booking link ────────────────────────────────────────────


def resolve_stay(
    checkin: str,
    num_nights: int | None = None,
    checkout: str | None = None,
) -> tuple[str, int]:
    """Return ``(checkout, nights)`` from whichever of the two was given.

    Raises:
        ValueError: neither given, bad date format, or a non-positive stay.
    """
    if not num_nights and not checkout:
        raise ValueError("Either num_nights or checkout must be provided.")

    start = date.fromisoformat(checkin)
    if checkout:
        nights = (date.fromisoformat(checkout) - start).days
    else:
        nights = num_nights
        checkout = (start + timedelta(days=nights)).isoformat()

    if nights < 1:
        raise ValueError("Checkout must be at least one night after check-in.")
    return checkout, nights


@tool
def create_booking(
    room_id: str,
    num_adults: int,
    checkin: str,
    num_nights: int | None = None,
    checkout: str | None = None,
    num_children: int = 0,
) -> str:
    """Create a booking URL for a room reservation.

    Provide either num_nights or checkout.

    Args:
        room_id: Room ID to book (from the availability tools).
        num_adults: Number of adults, at least 1.
        checkin: Check-in date (YYYY-MM-DD).
        num_nights: Number of nights (optional if checkout is given).
        checkout: Check-out date (YYYY-MM-DD, optional if num_nights is given).
        num_children: Number of children (default 0).
    """
    if not room_id or num_adults < 1 or not checkin:
        return "A room ID, at least one adult, and a check-in date are required."
    if num_children < 0:
        return "The number of children cannot be negative."

    try:
        checkout_date, nights = resolve_stay(checkin, num_nights, checkout)
    except ValueError as e:
        return f"I couldn't work out the stay dates: {e}"

    args = {
        "roomid": room_id,
        "numadult": num_adults,
        "checkin": checkin,
        "numnight": nights,
        "numchild": num_children,
    }
    try:
        result = get_mcp_client().call_tool("create_booking", args)
    except ToolCallFailed as e:
        logger.error("Failed to create booking link for room %s: %s", room_id, e)
        return _unavailable("create the booking link", e)

    if not isinstance(result, dict) or not result.get("bookingUrl"):
        return json.dumps(result, ensure_ascii=False)

    return (
        f"Booking link ready!\n"
        f"  Room: {room_id}\n"
        f"  Check-in: {checkin}\n"
        f"  Check-out: {checkout_date} ({nights} night{'s' if nights != 1 else ''})\n"
        f"  Guests: {num_adults} adult(s), {num_children} child(ren)\n"
        f"  Book here: {result['bookingUrl']}"
    )


ALL_TOOLS = [
    get_all_availability_30_days,
    get_property_availability_by_dates,
    create_booking,
]

TOOLS_BY_NAME = {t.name: t for t in ALL_TOOLS}
