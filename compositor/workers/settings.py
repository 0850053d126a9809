"""Arq connection settings shared by the API and the worker."""

from arq.connections import RedisSettings

from compositor.config import get_settings

settings = get_settings()


def parse_redis_url(url: str) -> RedisSettings:
    """Parse a ``redis://[user:pass@]host[:port][/db]`` URL into RedisSettings."""
    url = url.replace("redis://", "")
    password = None
    if "@" in url:
        auth, url = url.rsplit("@", 1)
        password = auth.split(":", 1)[1] if ":" in auth else auth

    hostport, _, db = url.partition("/")
    if ":" in hostport:
        host, port = hostport.split(":", 1)
    else:
        host, port = hostport, "6379"

    return RedisSettings(
        host=host or "localhost",
        port=int(port),
        password=password or None,
        database=int(db) if db.isdigit() else 0,
    )


redis_settings = parse_redis_url(settings.redis_url)
