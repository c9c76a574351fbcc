import pytest

from autolog.errors import ValidationFailed
from autolog.resources import FINANCIAL_RULES, FUEL_ENTRY_SPEC
from autolog.validation import DateFormat, Numeric, Required, coerce_number, validate_payload

FUEL = {
    "carId": "car1",
    "fuelCompany": "Shell",
    "fuelType": "Diesel",
    "mileage": 1000,
    "volume": 40,
    "cost": 60,
    "currency": "USD",
    "date": "2024-01-15",
    "paymentType": "Cash",
}

INCOME = {"carId": "car1", "category": "Ride Sharing", "amount": 50, "currency": "USD", "date": "2024-01-15"}


def test_coerce_number() -> None:
    assert coerce_number(3) == 3
    assert coerce_number("2.5") == 2.5
    assert coerce_number(" 7 ") == 7.0
    assert coerce_number("abc") is None
    assert coerce_number(True) is None
    assert coerce_number(float("nan")) is None
    assert coerce_number("inf") is None
    assert coerce_number([1]) is None


@pytest.mark.parametrize("field", ["volume", "mileage", "cost"])
def test_fuel_numbers_accept_zero(field: str) -> None:
    cleaned = validate_payload({**FUEL, field: 0}, FUEL_ENTRY_SPEC.rules)
    assert cleaned[field] == 0


@pytest.mark.parametrize(
    ("field", "message"),
    [
        ("volume", "Volume must be a valid positive number"),
        ("mileage", "Mileage must be a valid non-negative number"),
        ("cost", "Cost must be a valid non-negative number"),
    ],
)
def test_fuel_numbers_reject_negative_and_text(field: str, message: str) -> None:
    for bad in (-1, "abc"):
        with pytest.raises(ValidationFailed) as exc:
            validate_payload({**FUEL, field: bad}, FUEL_ENTRY_SPEC.rules)
        assert exc.value.message == message
        assert exc.value.status_code == 400


def test_fuel_numeric_strings_become_numbers() -> None:
    cleaned = validate_payload({**FUEL, "volume": "42.5", "tyrePressure": ""}, FUEL_ENTRY_SPEC.rules)
    assert cleaned["volume"] == 42.5
    assert cleaned["tyrePressure"] is None


def test_financial_amount_must_be_strictly_positive() -> None:
    for bad in (0, -5, "abc", "0"):
        with pytest.raises(ValidationFailed) as exc:
            validate_payload({**INCOME, "amount": bad}, FINANCIAL_RULES, envelope=True)
        assert exc.value.body() == {"success": False, "message": "Amount must be a positive number"}
    assert validate_payload({**INCOME, "amount": "12.5"}, FINANCIAL_RULES)["amount"] == 12.5


def test_financial_required_fields_and_date_format() -> None:
    with pytest.raises(ValidationFailed) as exc:
        validate_payload({**INCOME, "currency": ""}, FINANCIAL_RULES)
    assert exc.value.message == "Missing required fields"
    with pytest.raises(ValidationFailed) as exc:
        validate_payload({**INCOME, "date": "15/01/2024"}, FINANCIAL_RULES)
    assert exc.value.message == "Date must be in YYYY-MM-DD format"
    with pytest.raises(ValidationFailed):
        validate_payload({**INCOME, "date": "2024-02-30"}, FINANCIAL_RULES)


def test_partial_validation_only_checks_supplied_fields() -> None:
    rules = (Required(("name", "brand")), Numeric("cost", "bad cost"), DateFormat("date"))
    assert validate_payload({"brand": "Toyota"}, rules, partial=True) == {"brand": "Toyota"}
    with pytest.raises(ValidationFailed):
        validate_payload({"brand": "  "}, rules, partial=True)
    with pytest.raises(ValidationFailed):
        validate_payload({"cost": None}, rules, partial=True)
