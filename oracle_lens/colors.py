"""Color vocabulary for color and color identity filters.

Maps color names, single letters and named multi-color combinations
(guilds, shards, wedges, four-color groups, Strixhaven colleges) to
canonical color letter sets.
"""

# Canonical color letters in WUBRG order
WUBRG = ("W", "U", "B", "R", "G")

# Pseudo-colors: never literal members of a card's color set
COLORLESS = "C"
MULTICOLOR = "M"

# Sort key for canonical WUBRG ordering; anything else sorts after
COLOR_ORDER = {"W": 0, "U": 1, "B": 2, "R": 3, "G": 4}

# Color name to symbol mapping
COLOR_MAP = {
    "white": "W",
    "blue": "U",
    "black": "B",
    "red": "R",
    "green": "G",
    "w": "W",
    "u": "U",
    "b": "B",
    "r": "R",
    "g": "G",
    "c": COLORLESS,
    "colorless": COLORLESS,
    "m": MULTICOLOR,
    "multicolor": MULTICOLOR,
}

# Named color combinations
COMBINATION_MAP = {
    # Guilds (2 color)
    "azorius": ["W", "U"], "dimir": ["U", "B"], "rakdos": ["B", "R"],
    "gruul": ["R", "G"], "selesnya": ["G", "W"], "orzhov": ["W", "B"],
    "izzet": ["U", "R"], "golgari": ["B", "G"], "boros": ["R", "W"],
    "simic": ["G", "U"],
    # Shards (3 color)
    "bant": ["G", "W", "U"], "esper": ["W", "U", "B"], "grixis": ["U", "B", "R"],
    "jund": ["B", "R", "G"], "naya": ["R", "G", "W"],
    # Wedges (3 color)
    "abzan": ["W", "B", "G"], "jeskai": ["U", "R", "W"], "sultai": ["B", "G", "U"],
    "mardu": ["R", "W", "B"], "temur": ["G", "U", "R"],
    # 4 color
    "chaos": ["U", "B", "R", "G"], "aggression": ["B", "R", "G", "W"],
    "altruism": ["R", "G", "W", "U"], "growth": ["G", "W", "U", "B"],
    "artifice": ["W", "U", "B", "R"],
    # Strixhaven colleges (2 color)
    "silverquill": ["W", "B"], "prismari": ["U", "R"], "witherbloom": ["B", "G"],
    "lorehold": ["R", "W"], "quandrix": ["G", "U"],
    # 5 color
    "fivecolor": ["W", "U", "B", "R", "G"],
}


def sort_colors(colors) -> tuple[str, ...]:
    """Return de-duplicated colors in WUBRG order (unknown letters last, alphabetical)."""
    return tuple(sorted(set(colors), key=lambda c: (COLOR_ORDER.get(c, 5), c)))


def normalize_color(token: str) -> str:
    """Normalize a single color name or letter to its symbol.

    Unrecognized tokens are uppercased and passed through unchanged.
    """
    lowered = token.lower()
    return COLOR_MAP.get(lowered, token.upper())


def parse_color_set(value: str) -> tuple[str, ...]:
    """Parse a color expression into a canonical sorted color set.

    The whole value is looked up first (combination names, then color
    names), and only then decomposed letter by letter, so "bant" is
    green-white-blue rather than the letters B, A, N, T.

    Examples:
        parse_color_set("esper") -> ("W", "U", "B")
        parse_color_set("rg") -> ("R", "G")
        parse_color_set("colorless") -> ("C",)
    """
    lowered = value.lower()

    if lowered in COMBINATION_MAP:
        return sort_colors(COMBINATION_MAP[lowered])

    if lowered in COLOR_MAP:
        return (COLOR_MAP[lowered],)

    return sort_colors(normalize_color(char) for char in lowered if not char.isspace())
