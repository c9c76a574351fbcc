from datetime import datetime, timezone

from bson import ObjectId

USERS = "users"
VEHICLES = "vehicles"
FUEL_ENTRIES = "fuelentries"
EXPENSE_ENTRIES = "expenseentries"
INCOME_ENTRIES = "incomeentries"
FUEL_COMPANIES = "fuelcompanies"
FUEL_TYPES = "fueltypes"
EXPENSE_CATEGORIES = "expensecategories"
INCOME_CATEGORIES = "incomecategories"
USER_PREFERENCES = "userpreferences"

OWNED_COLLECTIONS = (
    VEHICLES,
    FUEL_ENTRIES,
    EXPENSE_ENTRIES,
    INCOME_ENTRIES,
    FUEL_COMPANIES,
    FUEL_TYPES,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    USER_PREFERENCES,
)


class InMemoryStore:
    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict]] = {}

    def collection(self, name: str) -> dict[str, dict]:
        return self.collections.setdefault(name, {})

    @staticmethod
    def make_id() -> ObjectId:
        return ObjectId()

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


store = InMemoryStore()


def new_document(**fields) -> dict:
    native = store.make_id()
    timestamp = store.now()
    return {"_id": native, "id": str(native), **fields, "createdAt": timestamp, "updatedAt": timestamp}
