from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from rentchain.core.config import settings


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "rentchain",
    broker=_redis_url,
    backend=_redis_url,
    include=["rentchain.tasks.jobs"],
)

celery.conf.timezone = "Africa/Casablanca"

celery.conf.beat_schedule = {
    "process-settlement-queue-every-2-minutes": {
        "task": "rentchain.tasks.jobs.process_settlement_queue",
        "schedule": 120.0,
        "kwargs": {"limit": 50},
    },
}
