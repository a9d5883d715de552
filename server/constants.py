"""
Card catalog and room constants for Pass the Bluff.

This module is the single source of truth for the card items a round can
be dealt from. Each round uses a subset of distinct items, so the catalog
size caps how many cards can be in play at once.

Room limits can be customized via environment variables.
See config.py for details.
"""

from config import config


# =============================================================================
# Card Catalog - Single Source of Truth
# =============================================================================

# (display name, client icon name)
CARD_ITEMS: list[tuple[str, str]] = [
    ("Apple", "Apple"),
    ("Car", "Car"),
    ("Book", "Book"),
    ("Phone", "Smartphone"),
    ("Cat", "Cat"),
    ("Tree", "TreePine"),
    ("House", "Home"),
    ("Guitar", "Guitar"),
    ("Pizza", "Pizza"),
    ("Camera", "Camera"),
    ("Flower", "Flower"),
    ("Clock", "Clock"),
    ("Laptop", "Laptop"),
    ("Coffee", "Coffee"),
    ("Bicycle", "Bike"),
    ("Sunglasses", "Glasses"),
    ("Shoes", "Footprints"),
    ("Watch", "Watch"),
    ("Balloon", "Heart"),
    ("Umbrella", "Umbrella"),
    ("Candle", "Flame"),
    ("Butterfly", "Bug"),
    ("Keyboard", "Keyboard"),
    ("Glasses", "GlassesIcon"),
    ("Hat", "HardHat"),
    ("Basketball", "CircleDot"),
    ("Pen", "Pen"),
    ("Dice", "Dice1"),
    ("Headphones", "Headphones"),
    ("Backpack", "Backpack"),
]


# =============================================================================
# Room Constants
# =============================================================================

MAX_PLAYERS = config.MAX_PLAYERS_PER_ROOM
MIN_PLAYERS = config.MIN_PLAYERS_PER_ROOM

# Player id used for system chat entries
SYSTEM_PLAYER_ID = "system"
SYSTEM_PLAYER_NAME = "System"
