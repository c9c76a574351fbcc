from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VehicleType(str, Enum):
    car_truck = "Car/Truck"
    motorcycle = "Motorcycle"
    heavy_truck = "Heavy Truck"
    atv_utv = "ATV & UTV"
    snowmobile = "Snowmobile"
    watercraft = "Personal Watercraft"
    other = "Other"


class Language(str, Enum):
    en = "en"
    zh = "zh"


class Theme(str, Enum):
    light = "light"
    dark = "dark"
    system = "system"


class FuelConsumptionUnit(str, Enum):
    litres_per_100km = "L/100km"
    km_per_litre = "km/L"
    gallons_per_100mi = "G/100mi"
    km_per_gallon = "km/G"
    miles_per_litre = "mi/L"


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class DocumentModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True, allow_inf_nan=False)


class VehicleCreate(DocumentModel):
    name: str = Field(min_length=1, max_length=200)
    vehicleType: VehicleType
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    customModel: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1886, le=2100)
    photo: str = ""
    description: str = ""
    distanceUnit: str = "km"
    fuelUnit: str = "L"
    consumptionUnit: str = "L/100km"
    fuelType: str = ""
    tankCapacity: Optional[float] = Field(default=None, ge=0)
    licensePlate: str = ""
    vin: str = ""
    insurancePolicy: str = ""

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class VehicleUpdate(DocumentModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    vehicleType: Optional[VehicleType] = None
    brand: Optional[str] = Field(default=None, min_length=1)
    model: Optional[str] = Field(default=None, min_length=1)
    customModel: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1886, le=2100)
    photo: Optional[str] = None
    description: Optional[str] = None
    distanceUnit: Optional[str] = None
    fuelUnit: Optional[str] = None
    consumptionUnit: Optional[str] = None
    fuelType: Optional[str] = None
    tankCapacity: Optional[float] = Field(default=None, ge=0)
    licensePlate: Optional[str] = None
    vin: Optional[str] = None
    insurancePolicy: Optional[str] = None


def _current_time() -> str:
    return datetime.now().strftime("%H:%M")


class FuelEntryCreate(DocumentModel):
    carId: str
    fuelCompany: str
    fuelType: str
    mileage: float
    distanceUnit: str = "km"
    volume: float
    volumeUnit: str = "liters"
    cost: float
    currency: str
    date: str
    time: str = Field(default_factory=_current_time)
    location: str = ""
    partialFuelUp: bool = False
    paymentType: str
    tyrePressure: Optional[float] = None
    tyrePressureUnit: str = "bar"
    tags: list[str] = Field(default_factory=list)
    notes: str = ""
    images: list[str] = Field(default_factory=list)

    @field_validator("time", mode="before")
    @classmethod
    def default_time(cls, value: Any) -> Any:
        return value or _current_time()


class FuelEntryUpdate(DocumentModel):
    carId: Optional[str] = None
    fuelCompany: Optional[str] = None
    fuelType: Optional[str] = None
    mileage: Optional[float] = None
    distanceUnit: Optional[str] = None
    volume: Optional[float] = None
    volumeUnit: Optional[str] = None
    cost: Optional[float] = None
    currency: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    partialFuelUp: Optional[bool] = None
    paymentType: Optional[str] = None
    tyrePressure: Optional[float] = None
    tyrePressureUnit: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    images: Optional[list[str]] = None


class FinancialEntryCreate(DocumentModel):
    carId: str
    category: str
    amount: float
    currency: str
    date: str
    notes: str = ""

    @field_validator("notes", mode="before")
    @classmethod
    def default_notes(cls, value: Any) -> Any:
        return value or ""


class ExpenseEntryCreate(FinancialEntryCreate):
    images: list[str] = Field(default_factory=list)


class ExpenseEntryUpdate(DocumentModel):
    carId: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    date: Optional[str] = None
    notes: Optional[str] = None
    images: Optional[list[str]] = None


class IncomeEntryCreate(FinancialEntryCreate):
    pass


class UserPreferences(DocumentModel):
    fuelCompanies: list[str] = Field(default_factory=lambda: ["BP", "Shell", "Esso"])
    fuelTypes: list[str] = Field(default_factory=lambda: ["Diesel", "Unleaded", "Premium"])
    customBrands: dict[str, Any] = Field(default_factory=dict)
    customModels: dict[str, Any] = Field(default_factory=dict)
    language: Language = Language.en
    theme: Theme = Theme.system
    fuelConsumptionUnit: FuelConsumptionUnit = FuelConsumptionUnit.litres_per_100km
    defaultCurrency: str = "USD"
    defaultDistanceUnit: str = "km"
    defaultVolumeUnit: str = "L"
    defaultTyrePressureUnit: str = "bar"
    defaultPaymentType: str = "Cash"


class UserPreferencesUpdate(DocumentModel):
    fuelCompanies: Optional[list[str]] = None
    fuelTypes: Optional[list[str]] = None
    customBrands: Optional[dict[str, Any]] = None
    customModels: Optional[dict[str, Any]] = None
    language: Optional[Language] = None
    theme: Optional[Theme] = None
    fuelConsumptionUnit: Optional[FuelConsumptionUnit] = None
    defaultCurrency: Optional[str] = None
    defaultDistanceUnit: Optional[str] = None
    defaultVolumeUnit: Optional[str] = None
    defaultTyrePressureUnit: Optional[str] = None
    defaultPaymentType: Optional[str] = None


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=200)
