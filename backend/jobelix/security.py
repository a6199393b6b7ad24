"""Same-origin check for cookie-authenticated, state-changing requests.

Explicit cross-site browser requests are blocked, a present ``Origin`` must
match a trusted origin, and a missing ``Origin`` is allowed so non-browser
clients keep working.
"""

from urllib.parse import urlsplit

from fastapi import HTTPException, Request

from jobelix.config import settings

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def _origin_of(url: str) -> str | None:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def trusted_origins(request: Request) -> set[str]:
    trusted = set()
    request_origin = _origin_of(str(request.base_url))
    if request_origin:
        trusted.add(request_origin)
        parts = urlsplit(request_origin)
        if parts.hostname in LOCAL_HOSTS:
            port = f":{parts.port}" if parts.port else ""
            trusted.add(f"{parts.scheme}://localhost{port}")
            trusted.add(f"{parts.scheme}://127.0.0.1{port}")

    configured = _origin_of(settings.app_url.strip()) if settings.app_url else None
    if configured:
        trusted.add(configured)
    return trusted


async def require_same_origin(request: Request) -> None:
    if request.method.upper() in SAFE_METHODS:
        return

    fetch_site = request.headers.get("sec-fetch-site")
    if fetch_site and fetch_site not in ("same-origin", "none"):
        raise HTTPException(status_code=403, detail="Invalid request origin")

    origin_header = request.headers.get("origin")
    if not origin_header:
        return

    origin = _origin_of(origin_header)
    if origin is None:
        raise HTTPException(status_code=403, detail="Invalid request origin")

    if settings.environment != "production" and urlsplit(origin).hostname in LOCAL_HOSTS:
        return

    if origin not in trusted_origins(request):
        raise HTTPException(status_code=403, detail="Invalid request origin")
