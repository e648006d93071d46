"""
Best-effort RSS catalog grouped by news scope. Some feeds fail through the public
proxies; the aggregation client tolerates that.
"""

from __future__ import annotations

from src.services.models import RssSource


def _sources(scope: str, entries: list[tuple[str, str]]) -> list[RssSource]:
    return [RssSource(name=name, url=url, scope=scope) for name, url in entries]


GLOBAL = _sources(
    "global",
    [
        ("BBC Top", "https://feeds.bbci.co.uk/news/rss.xml"),
        ("BBC World", "https://feeds.bbci.co.uk/news/world/rss.xml"),
        ("CNN World", "http://rss.cnn.com/rss/edition_world.rss"),
        ("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml"),
        ("DW", "https://rss.dw.com/rdf/rss-en-top"),
        ("UN News", "https://news.un.org/feed/subscribe/en/news/all/rss.xml"),
        ("NYT World", "https://rss.nytimes.com/services/xml/rss/nyt/World.xml"),
        ("The Guardian World", "https://www.theguardian.com/world/rss"),
        ("NPR World", "https://feeds.npr.org/1004/rss.xml"),
        ("Xinhua World", "http://www.xinhuanet.com/english/rss/worldrss.xml"),
        ("TASS", "https://tass.com/rss/v2.xml"),
        ("RT", "https://www.rt.com/rss/news/"),
        ("Tehran Times", "https://www.tehrantimes.com/rss"),
        ("Jerusalem Post", "https://www.jpost.com/Rss/RssFeedsHeadlines.aspx"),
        ("USGS Earthquakes", "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_day.atom"),
        ("NASA Breaking", "https://www.nasa.gov/rss/dyn/breaking_news.rss"),
        ("TechCrunch", "https://techcrunch.com/feed/"),
        ("The Verge", "https://www.theverge.com/rss/index.xml"),
        ("Nature News", "https://www.nature.com/nature/articles?type=news&format=rss"),
        ("WHO News", "https://www.who.int/feeds/entity/mediacentre/news/en/rss.xml"),
        ("ReliefWeb Updates", "https://reliefweb.int/updates/rss.xml"),
    ],
)

AMERICAS = _sources(
    "americas",
    [
        ("BBC US & Canada", "https://feeds.bbci.co.uk/news/world/us_and_canada/rss.xml"),
        ("BBC Latin America", "https://feeds.bbci.co.uk/news/world/latin_america/rss.xml"),
        ("CNN World", "http://rss.cnn.com/rss/edition_world.rss"),
        ("NYT World", "https://rss.nytimes.com/services/xml/rss/nyt/World.xml"),
        ("NPR World", "https://feeds.npr.org/1004/rss.xml"),
    ],
)

EUROPE = _sources(
    "europe",
    [
        ("BBC Europe", "https://feeds.bbci.co.uk/news/world/europe/rss.xml"),
        ("DW", "https://rss.dw.com/rdf/rss-en-top"),
        ("The Guardian World", "https://www.theguardian.com/world/rss"),
        ("BBC World", "https://feeds.bbci.co.uk/news/world/rss.xml"),
    ],
)

AFRICA = _sources(
    "africa",
    [
        ("BBC Africa", "https://feeds.bbci.co.uk/news/world/africa/rss.xml"),
        ("UN News", "https://news.un.org/feed/subscribe/en/news/all/rss.xml"),
        ("ReliefWeb Updates", "https://reliefweb.int/updates/rss.xml"),
    ],
)

MIDDLE_EAST = _sources(
    "middle_east",
    [
        ("BBC Middle East", "https://feeds.bbci.co.uk/news/world/middle_east/rss.xml"),
        ("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml"),
        ("Tehran Times", "https://www.tehrantimes.com/rss"),
        ("Jerusalem Post", "https://www.jpost.com/Rss/RssFeedsHeadlines.aspx"),
    ],
)

ASIA_PACIFIC = _sources(
    "asia_pacific",
    [
        ("BBC Asia", "https://feeds.bbci.co.uk/news/world/asia/rss.xml"),
        ("BBC World", "https://feeds.bbci.co.uk/news/world/rss.xml"),
        ("Xinhua World", "http://www.xinhuanet.com/english/rss/worldrss.xml"),
        ("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml"),
    ],
)

RSS_SOURCES_BY_SCOPE: dict[str, list[RssSource]] = {
    "global": GLOBAL,
    "americas": AMERICAS,
    "europe": EUROPE,
    "africa": AFRICA,
    "middle_east": MIDDLE_EAST,
    "asia_pacific": ASIA_PACIFIC,
}


def sources_for_scope(scope: str | None) -> list[RssSource]:
    return list(RSS_SOURCES_BY_SCOPE.get(scope or "global") or GLOBAL)
