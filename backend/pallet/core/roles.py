# pallet/core/roles.py

import enum


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class OwnerType(str, enum.Enum):
    COMPANY = "COMPANY"  # the abstract company catalog, maintained by admins
    SELLER = "SELLER"    # a single seller's personal catalog


class EntityType(str, enum.Enum):
    PRODUCT = "PRODUCT"
    BRAND = "BRAND"
    USER = "USER"


class FileType(str, enum.Enum):
    IMAGE = "IMAGE"
    MATERIAL = "MATERIAL"


class UserSlot(str, enum.Enum):
    AVATAR = "avatar"
    QRCODE = "qrcode"


class BrandStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ShareType(str, enum.Enum):
    FULL = "FULL"


class StaticPageType(str, enum.Enum):
    STORE_SERVICE = "store-service"
    LOGISTICS = "logistics"
    HELP_CENTER = "help-center"
