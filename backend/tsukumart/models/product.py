import base64
import binascii
import enum
import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from tsukumart.errors import ValidationError


class Condition(str, enum.Enum):
    new = "new"
    like_new = "likeNew"
    very_good = "veryGood"
    good = "good"
    acceptable = "acceptable"
    junk = "junk"


class CategoryGroup(str, enum.Enum):
    furniture = "furniture"
    appliance = "appliance"
    fashion = "fashion"
    book = "book"
    vehicle = "vehicle"
    food = "food"
    hobby = "hobby"


class Category(str, enum.Enum):
    furniture_table = "furnitureTable"
    furniture_chair = "furnitureChair"
    furniture_chest = "furnitureChest"
    furniture_bed = "furnitureBed"
    furniture_kitchen = "furnitureKitchen"
    furniture_curtain = "furnitureCurtain"
    furniture_mat = "furnitureMat"
    furniture_other = "furnitureOther"
    appliance_refrigerator = "applianceRefrigerator"
    appliance_microwave = "applianceMicrowave"
    appliance_washing = "applianceWashing"
    appliance_vacuum = "applianceVacuum"
    appliance_temperature = "applianceTemperature"
    appliance_humidity = "applianceHumidity"
    appliance_light = "applianceLight"
    appliance_tv = "applianceTv"
    appliance_speaker = "applianceSpeaker"
    appliance_smartphone = "applianceSmartphone"
    appliance_pc = "appliancePc"
    appliance_communication = "applianceCommunication"
    appliance_other = "applianceOther"
    fashion_mens = "fashionMens"
    fashion_ladies = "fashionLadies"
    fashion_other = "fashionOther"
    book_textbook = "bookTextbook"
    book_book = "bookBook"
    book_comic = "bookComic"
    book_other = "bookOther"
    vehicle_bicycle = "vehicleBicycle"
    vehicle_bike = "vehicleBike"
    vehicle_car = "vehicleCar"
    vehicle_other = "vehicleOther"
    food_food = "foodFood"
    food_beverage = "foodBeverage"
    food_other = "foodOther"
    hobby_disc = "hobbyDisc"
    hobby_instrument = "hobbyInstrument"
    hobby_camera = "hobbyCamera"
    hobby_game = "hobbyGame"
    hobby_sport = "hobbySport"
    hobby_art = "hobbyArt"
    hobby_accessory = "hobbyAccessory"
    hobby_daily = "hobbyDaily"
    hobby_handmade = "hobbyHandmade"
    hobby_other = "hobbyOther"


# Member names are "<group>_<item>", e.g. furniture_table.
CATEGORIES_BY_GROUP: dict[CategoryGroup, tuple[Category, ...]] = {
    group: tuple(c for c in Category if c.name.split("_", 1)[0] == group.value)
    for group in CategoryGroup
}


class ProductStatus(str, enum.Enum):
    selling = "selling"
    trading = "trading"
    sold_out = "soldOut"


_DATA_URL_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+);base64,(.+)$", re.DOTALL)


class DataUrl(BaseModel):
    """Image payload submitted by clients as ``data:<mime>;base64,<data>``."""

    mime_type: str
    data: bytes

    @classmethod
    def parse(cls, value: str) -> "DataUrl":
        match = _DATA_URL_RE.match(value or "")
        if not match:
            raise ValidationError("Expected a base64 data URL")
        try:
            data = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Data URL payload is not valid base64")
        return cls(mime_type=match.group(1), data=data)


class UserSummary(BaseModel):
    """Snapshot of a user copied onto products and comments when they are written."""

    id: str
    display_name: str
    image_id: str


class ProductCommentView(BaseModel):
    comment_id: str
    body: str
    speaker: UserSummary
    created_at: datetime


class ProductView(BaseModel):
    id: str
    name: str
    price: int
    description: str
    condition: Condition
    category: Category
    thumbnail_image_id: str
    image_ids: List[str]
    liked_count: int
    viewed_count: int
    status: ProductStatus
    seller: UserSummary
    comments: List[ProductCommentView] = []
    created_at: datetime
    update_at: datetime


class DraftProductView(BaseModel):
    draft_id: str
    name: str
    price: Optional[int] = None
    description: str
    condition: Optional[Condition] = None
    category: Optional[Category] = None
    thumbnail_image_id: Optional[str] = None
    image_ids: List[str]
    created_at: datetime
    update_at: datetime
