from carddex.db.database import get_session, init_db
from carddex.db.operations import (
    add_achievement,
    add_collection_card,
    add_milestone,
    add_wishlist_card,
    append_activity,
    create_profile,
    get_activity,
    get_profile,
    load_profile_records,
    require_profile,
    set_collection_quantity,
)

__all__ = [
    "add_achievement",
    "add_collection_card",
    "add_milestone",
    "add_wishlist_card",
    "append_activity",
    "create_profile",
    "get_activity",
    "get_profile",
    "get_session",
    "init_db",
    "load_profile_records",
    "require_profile",
    "set_collection_quantity",
]
