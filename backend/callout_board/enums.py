from enum import Enum


class CallOutStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class ResourceCategory(str, Enum):
    PERSONNEL = "personnel"
    EQUIPMENT = "equipment"
    VEHICLES = "vehicles"


class BroadcastEvent(str, Enum):
    CALLOUT_NEW = "callout:new"
    CALLOUT_UPDATE = "callout:update"
    CALLOUT_DELETE = "callout:delete"
    RESOURCE_NEW = "resource:new"
    RESOURCE_UPDATE = "resource:update"
    RESOURCE_DELETE = "resource:delete"
    BOARD_UPDATE = "board:update"


# Legacy seed files used upper-case singular kinds for board strips.
RESOURCE_CATEGORY_ALIASES: dict[str, ResourceCategory] = {
    ResourceCategory.PERSONNEL.value: ResourceCategory.PERSONNEL,
    ResourceCategory.EQUIPMENT.value: ResourceCategory.EQUIPMENT,
    ResourceCategory.VEHICLES.value: ResourceCategory.VEHICLES,
    "PERSONNEL": ResourceCategory.PERSONNEL,
    "PERSON": ResourceCategory.PERSONNEL,
    "EQUIPMENT": ResourceCategory.EQUIPMENT,
    "MEDICAL_PACK": ResourceCategory.EQUIPMENT,
    "VEHICLE": ResourceCategory.VEHICLES,
    "VEHICLES": ResourceCategory.VEHICLES,
}
