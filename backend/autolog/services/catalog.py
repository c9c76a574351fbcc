from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional

from ..ids import remove_duplicate_ids
from ..persistence import DocumentStore
from ..store import EXPENSE_CATEGORIES, new_document

logger = logging.getLogger(__name__)

PREDEFINED_PREFIX = "predefined-"

CURRENCIES = sorted([
    "USD", "EUR", "GBP", "JPY", "HKD", "CAD", "AUD", "CHF", "CNY", "SGD",
    "NZD", "INR", "KRW", "MXN", "BRL", "ZAR", "RUB", "SEK", "NOK", "DKK",
])

DISTANCE_UNITS = ["km", "miles"]

VOLUME_UNITS = ["liters", "gallons", "gallons (US)", "gallons (UK)"]

TYRE_PRESSURE_UNITS = ["bar", "PSI", "kPa"]

PAYMENT_TYPES = ["Cash", "Credit Card", "Mobile App", "Other"]

FUEL_COMPANIES = [
    "Shell",
    "ExxonMobil",
    "BP",
    "Chevron",
    "Total",
    "Esso",
    "Texaco",
    "Mobil",
    "Petron",
    "Caltex",
    "Sinopec",
    "PetroChina",
    "Gazprom",
    "Lukoil",
    "Rosneft",
    "Valero",
    "Marathon",
    "Phillips 66",
    "ConocoPhillips",
    "Repsol",
    "ENI",
    "OMV",
    "MOL",
    "PKN Orlen",
    "Neste",
    "Circle K",
    "7-Eleven",
    "Speedway",
    "Wawa",
    "QuikTrip",
    "Other",
]

FUEL_TYPES = [
    "Regular Gasoline",
    "Premium Gasoline",
    "Super Premium Gasoline",
    "Diesel",
    "Premium Diesel",
    "Bio Diesel",
    "E85 Ethanol",
    "E10 Ethanol",
    "CNG (Compressed Natural Gas)",
    "LPG (Liquefied Petroleum Gas)",
    "Electric",
    "Hydrogen",
    "Aviation Fuel",
    "Marine Fuel",
    "Racing Fuel",
    "Other",
]

INCOME_CATEGORIES = [
    "Ride Sharing",
    "Delivery Services",
    "Taxi Services",
    "Car Rental",
    "Vehicle Sale",
    "Insurance Claim",
    "Fuel Reimbursement",
    "Mileage Reimbursement",
    "Business Use",
    "Freelance Driving",
    "Other",
]

EXPENSE_CATEGORY_NAMES = [
    # Maintenance & Service
    "Regular Service",
    "Oil Change",
    "Tire Replacement",
    "Tire Repair",
    "Tire Rotation",
    "Tire Balancing",
    "Wheel Alignment",
    "Brake Service",
    "Brake Pad Replacement",
    "Brake Fluid Change",
    "Engine Repair",
    "Engine Tune-up",
    "Engine Oil Filter",
    "Transmission Service",
    "Transmission Repair",
    "Transmission Fluid Change",
    "Battery Replacement",
    "Battery Testing",
    "Air Filter",
    "Cabin Air Filter",
    "Fuel Filter",
    "Spark Plugs",
    "Spark Plug Wires",
    "Coolant Service",
    "Coolant Flush",
    "Radiator Repair",
    "Thermostat Replacement",
    "Water Pump Replacement",
    "Exhaust Repair",
    "Muffler Replacement",
    "Catalytic Converter",
    "Suspension Repair",
    "Shock Absorber Replacement",
    "Strut Replacement",
    "Spring Replacement",
    "Electrical Repair",
    "Alternator Replacement",
    "Starter Replacement",
    "Fuse Replacement",
    "Wiring Repair",
    "Air Conditioning Service",
    "AC Compressor",
    "AC Refrigerant",
    "Heater Repair",
    "Windshield Wiper Blades",
    "Windshield Washer Fluid",
    "Power Steering Service",
    "Belt Replacement",
    "Hose Replacement",
    "Timing Belt",
    "Clutch Repair",
    "Clutch Replacement",
    "CV Joint Repair",
    "Differential Service",
    "Fuel Pump Replacement",
    "Fuel Injector Cleaning",
    "Carburetor Service",

    # Legal & Registration
    "Vehicle Registration",
    "Registration Renewal",
    "License Renewal",
    "Inspection Fee",
    "Safety Inspection",
    "Emissions Test",
    "Smog Check",
    "Road Tax",
    "Vehicle Tax",
    "Tag Renewal",
    "Title Transfer",
    "Notary Fees",
    "DMV Fees",

    # Insurance & Protection
    "Insurance Premium",
    "Insurance Deductible",
    "Comprehensive Coverage",
    "Collision Coverage",
    "Liability Insurance",
    "Gap Insurance",
    "Extended Warranty",
    "Service Contract",
    "Roadside Assistance",
    "AAA Membership",

    # Accidents & Damage
    "Accident Repair",
    "Collision Damage",
    "Vandalism Repair",
    "Theft Recovery",
    "Glass Replacement",
    "Windshield Replacement",
    "Window Repair",
    "Paint Repair",
    "Scratch Repair",
    "Dent Repair",
    "Body Work",
    "Frame Repair",
    "Bumper Repair",
    "Mirror Replacement",
    "Headlight Replacement",
    "Tail Light Replacement",

    # Cleaning & Appearance
    "Car Wash",
    "Detailing",
    "Interior Detailing",
    "Exterior Detailing",
    "Waxing",
    "Paint Protection",
    "Ceramic Coating",
    "Interior Cleaning",
    "Carpet Cleaning",
    "Seat Cleaning",
    "Dashboard Treatment",
    "Leather Conditioning",

    # Accessories & Upgrades
    "Car Accessories",
    "Audio System",
    "Speaker Installation",
    "Amplifier Installation",
    "Subwoofer Installation",
    "Navigation System",
    "Dash Cam",
    "Backup Camera",
    "Security System",
    "Car Alarm",
    "Remote Start",
    "Keyless Entry",
    "Performance Upgrades",
    "Turbo Installation",
    "Exhaust Upgrade",
    "Suspension Upgrade",
    "Cold Air Intake",
    "Performance Chip",
    "Tinting",
    "Window Tinting",
    "Sunroof Installation",
    "Roof Rack",
    "Trailer Hitch",
    "Running Boards",
    "Bull Bar",
    "Mud Flaps",
    "Floor Mats",
    "Seat Covers",
    "Steering Wheel Cover",
    "Phone Mount",
    "USB Charger",
    "Inverter",
    "Jump Starter",
    "Tool Kit",
    "Emergency Kit",

    # Daily Operations
    "Parking Fees",
    "Parking Meter",
    "Parking Garage",
    "Monthly Parking",
    "Tolls",
    "Bridge Toll",
    "Highway Toll",
    "Congestion Charge",
    "Valet Service",
    "Car Rental",
    "Rental Car",
    "Rideshare",
    "Taxi",
    "Public Transport",

    # Violations & Penalties
    "Traffic Fine",
    "Speeding Ticket",
    "Parking Ticket",
    "Red Light Ticket",
    "Moving Violation",
    "Equipment Violation",
    "Late Fees",
    "Court Costs",
    "Attorney Fees",
    "Traffic School",
    "Defensive Driving Course",

    # Major Expenses
    "Vehicle Purchase",
    "Down Payment",
    "Trade-in Difference",
    "Loan Payment",
    "Lease Payment",
    "Balloon Payment",
    "Sales Tax",
    "Documentation Fee",
    "Dealer Fee",
    "Finance Charges",
    "Interest Payment",
    "Gap Protection",
    "Vehicle Depreciation",

    # Fuel & Energy
    "Fuel Additives",
    "Octane Booster",
    "Fuel System Cleaner",
    "Electric Charging",
    "Home Charging Station",
    "Public Charging",
    "Fast Charging",
    "Charging Membership",
    "Solar Panel Installation",
    "Generator Fuel",

    # Professional Services
    "Mechanic Labor",
    "Diagnostic Fee",
    "Shop Supplies",
    "Environmental Fee",
    "Disposal Fee",
    "Towing Service",
    "Flatbed Towing",
    "Roadside Service",
    "Jump Start Service",
    "Lockout Service",
    "Tire Change Service",
    "Mobile Mechanic",
    "Delivery Fee",
    "Pickup Fee",

    # Storage & Facilities
    "Storage Fees",
    "Garage Rental",
    "Covered Parking",
    "Car Port",
    "Vehicle Storage",
    "Seasonal Storage",
    "Climate Controlled Storage",

    # Emergency & Unexpected
    "Emergency Repair",
    "Roadside Emergency",
    "After Hours Service",
    "Holiday Surcharge",
    "Expedited Service",
    "Rush Delivery",
    "Emergency Towing",
    "Emergency Parts",
    "Temporary Transportation",
    "Rental Car (Emergency)",
    "Hotel Stay (Travel)",
    "Meals (Travel)",

    # Specialty & Custom
    "Custom Fabrication",
    "Restoration Work",
    "Antique Car Parts",
    "Classic Car Service",
    "Show Car Preparation",
    "Racing Preparation",
    "Track Day Fees",
    "Driver Training",
    "Performance Testing",
    "Dyno Testing",
    "Alignment Specs",
    "Custom Paint",
    "Vinyl Wrap",
    "Decals",
    "Graphics",
    "Chrome Work",
    "Powder Coating",
    "Sandblasting",
    "Welding",
    "Fabrication",

    # Miscellaneous
    "Miscellaneous",
    "Other",
    "Unknown",
    "Reimbursable Expense",
    "Business Expense",
    "Personal Use",
    "Gift",
    "Donation",
    "Charity",
    "Research",
    "Testing",
    "Experimental",
    "Prototype",
    "Development",
]


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name).lower()


def predefined_id(name: str) -> str:
    return f"{PREDEFINED_PREFIX}{slugify(name)}"


def is_predefined_id(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(PREDEFINED_PREFIX)


def predefined_entry(name: str, user_id: Optional[str] = None) -> dict[str, Any]:
    entry_id = predefined_id(name)
    entry: dict[str, Any] = {"_id": entry_id, "id": entry_id, "name": name, "isPredefined": True}
    if user_id is not None:
        entry["userId"] = user_id
    return entry


def name_key(name: Any, case_insensitive: bool) -> str:
    text = str(name or "")
    return text.casefold() if case_insensitive else text


def sort_by_name(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(entries, key=lambda entry: (str(entry.get("name", "")).casefold(), str(entry.get("name", ""))))


def merge_catalog(
    custom: Iterable[dict[str, Any]],
    predefined: Iterable[str],
    user_id: Optional[str] = None,
    case_insensitive: bool = False,
) -> list[dict[str, Any]]:
    """Custom entries plus a pseudo-entry for every built-in name the user has not stored."""
    seen: set[str] = set()
    merged: list[dict[str, Any]] = []
    for entry in remove_duplicate_ids(custom):
        key = name_key(entry.get("name"), case_insensitive)
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    for name in predefined:
        key = name_key(name, case_insensitive)
        if key in seen:
            continue
        seen.add(key)
        merged.append(predefined_entry(name, user_id))
    return sort_by_name(merged)


def find_predefined(name: Any, predefined: Iterable[str], case_insensitive: bool = False) -> Optional[str]:
    wanted = name_key(name, case_insensitive)
    for candidate in predefined:
        if name_key(candidate, case_insensitive) == wanted:
            return candidate
    return None


def exact_name_query(name: str, case_insensitive: bool) -> Any:
    if case_insensitive:
        return {"$regex": f"^{re.escape(name)}$", "$options": "i"}
    return name


def seed_expense_categories(document_store: DocumentStore, user_id: str) -> int:
    """Persist the built-in expense categories the user does not have yet. Safe to call repeatedly."""
    existing = {
        name_key(doc.get("name"), True)
        for doc in document_store.find(EXPENSE_CATEGORIES, {"userId": user_id})
    }
    missing = [
        new_document(userId=user_id, name=name, isPredefined=True)
        for name in EXPENSE_CATEGORY_NAMES
        if name_key(name, True) not in existing
    ]
    if missing:
        document_store.insert_many(EXPENSE_CATEGORIES, missing)
    logger.info("Seeded %d expense categories for user %s", len(missing), user_id)
    return len(missing)
