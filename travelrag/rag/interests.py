"""
Interest tag expansion.

Maps the interest tags collected upstream to descriptive keyword phrases
used both as retrieval query text and as reranking keywords. Pure lookups,
no I/O.
"""

from typing import Dict, Iterable, List

FALLBACK_PHRASE = "general sightseeing"

INTEREST_KEYWORDS: Dict[str, str] = {
    # Main categories
    "culture": "palaces, temples, historical sites, traditional villages, museums, UNESCO heritage, royal tombs, fortress walls",
    "kculture": "K-pop fan spots, K-drama filming locations, K-beauty shops, Gangnam entertainment, Hongdae indie scene, concert halls",
    "food_shopping": "Korean BBQ restaurants, street food markets, traditional food alleys, Gwangjang Market, Myeongdong shopping, Korean cosmetics shops",
    "nature": "national parks, hiking trails, Bukhansan, scenic viewpoints, botanical gardens, riverside walks, beaches",
    "local": "local neighborhoods, hidden cafes, off-the-beaten-path alleys, temple stay experiences, traditional craft workshops",
    # Sub categories
    "historical": "Joseon dynasty palaces, fortress walls, royal tombs, war memorials",
    "museums": "National Museum of Korea, art galleries, war museums, folk museums",
    "architecture": "Dongdaemun Design Plaza, traditional hanok, modern Seoul architecture",
    "kpop": "HYBE Insight, SM Entertainment, idol cafes, K-pop merchandise shops, Gangnam K-Star Road",
    "kdrama": "drama filming locations, Nami Island, K-drama photo spots, famous drama sets",
    "beauty": "K-beauty flagship stores, Myeongdong cosmetics street, skincare experiences",
    "food": "Korean BBQ, bibimbap, kimchi jjigae, tteokbokki, fine dining Korean cuisine",
    "markets": "Namdaemun Market, Gwangjang Market, Noryangjin Fish Market, Dongdaemun wholesale",
    "shopping": "Myeongdong, Garosu-gil, COEX Mall, Hongdae vintage shops",
    "fashion": "Gangnam boutiques, Dongdaemun fashion, Korean designer brands",
    "hiking": "Bukhansan trails, Inwangsan city wall, Achasan, Gwanaksan",
    "adventure": "zip-lining, rafting, paragliding, outdoor activities near Seoul",
    "hidden_places": "Ikseon-dong hanok alley, Seongsu-dong cafes, Yeonnam-dong, Mangwon neighborhood",
    "like_local": "local cafes, neighborhood walks, pojangmacha experiences, jjimjilbang",
    "sports": "baseball games, taekwondo, archery, esports arena",
    "luxury": "luxury hotels, premium spa, Cheongdam-dong, high-end experiences",
    "nature_sub": "national parks, scenic viewpoints, botanical gardens, riverside walks",
}

# Interest tag -> catalog category values used by the candidate lookup
INTEREST_CATEGORIES: Dict[str, List[str]] = {
    "culture": ["palace", "temple", "museum", "heritage", "village"],
    "kculture": ["kpop", "drama", "entertainment", "beauty"],
    "food_shopping": ["restaurant", "market", "shopping", "food"],
    "nature": ["park", "nature", "mountain", "beach"],
    "local": ["neighborhood", "cafe", "experience"],
    "historical": ["palace", "heritage", "fortress", "memorial"],
    "museums": ["museum", "gallery"],
    "architecture": ["architecture", "landmark", "hanok"],
    "kpop": ["kpop", "entertainment"],
    "kdrama": ["drama", "filming_location"],
    "beauty": ["beauty", "shopping"],
    "food": ["restaurant", "food"],
    "markets": ["market"],
    "shopping": ["shopping", "market"],
    "fashion": ["shopping", "fashion"],
    "hiking": ["mountain", "trail", "park"],
    "adventure": ["activity", "outdoor"],
    "hidden_places": ["neighborhood", "cafe"],
    "like_local": ["neighborhood", "cafe", "experience"],
    "sports": ["sports", "activity"],
    "luxury": ["luxury", "spa"],
    "nature_sub": ["park", "nature"],
}


def expand_interests(sub_tags: Iterable[str], main_tags: Iterable[str]) -> str:
    """
    Expand interest tags into a comma-separated keyword phrase.

    Sub-tags are more specific and take priority: if any sub-tag resolves,
    main-tags are ignored entirely. Unknown sub-tags are skipped.

    Args:
        sub_tags: Sub interest tags (e.g. ["kpop", "markets"])
        main_tags: Main interest tags (e.g. ["kculture"])

    Returns:
        Joined keyword phrases, or "general sightseeing" when nothing resolves
    """
    expanded = [INTEREST_KEYWORDS[tag] for tag in sub_tags if tag in INTEREST_KEYWORDS]
    if not expanded:
        expanded = [INTEREST_KEYWORDS[tag] for tag in main_tags if tag in INTEREST_KEYWORDS]
    return ", ".join(expanded) or FALLBACK_PHRASE


def interest_keywords(sub_tags: Iterable[str], main_tags: Iterable[str]) -> List[str]:
    """Lower-cased reranking keywords from the same expansion, without the fallback phrase"""
    expanded = expand_interests(sub_tags, main_tags)
    if expanded == FALLBACK_PHRASE:
        return []
    return [kw.strip().lower() for kw in expanded.split(",") if kw.strip()]


def interest_to_categories(tags: Iterable[str]) -> List[str]:
    """Catalog category values for the given interest tags, deduplicated in order"""
    seen = set()
    categories = []
    for tag in tags:
        for category in INTEREST_CATEGORIES.get(tag, []):
            if category not in seen:
                seen.add(category)
                categories.append(category)
    return categories
