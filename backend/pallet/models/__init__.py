# Import models here so Alembic can discover metadata.
from pallet.models.user import User  # noqa: F401
from pallet.models.store import Store, UserStore  # noqa: F401

# Catalog
from pallet.models.brand import Brand  # noqa: F401
from pallet.models.product import Product, PriceTier  # noqa: F401
from pallet.models.attachment import Attachment  # noqa: F401
from pallet.models.recycle_bin import RecycleBinEntry  # noqa: F401

# Sharing, sessions, telemetry
from pallet.models.share import PalletShare, CustomerLog  # noqa: F401
from pallet.models.session_token import RefreshToken  # noqa: F401
from pallet.models.access_log import AccessLog  # noqa: F401

# Site content and preferences
from pallet.models.static_page import StaticPage  # noqa: F401
from pallet.models.pagination_setting import UserPaginationSetting  # noqa: F401
