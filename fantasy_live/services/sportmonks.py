# fantasy_live/services/sportmonks.py
from __future__ import annotations
import time, logging, requests
from typing import Any, Dict, List, Optional, Tuple

from ..settings import settings
from ..errors import ProviderError

logger = logging.getLogger(__name__)

# ---------------- Config ----------------
BASE_URL = settings.SPORTMONKS_API_URL.rstrip("/")
FIXTURE_INCLUDES = "runs,batting,bowling,scoreboards,balls,localteam,visitorteam,lineup"
HEADERS = {"Accept": "application/json"}

FINISHED_STATUSES = {"finished", "completed"}
# no result: the match ends without settlement
VOID_STATUSES = {"aban.", "cancl."}

# ---------------- Diagnostics ----------------
LAST_HTTP: Dict[str, Optional[object]] = {
    "url": None,
    "params": None,
    "status": None,             # int or "cached"/"error"
    "error": None,
    "cached": False,
    "ratelimit_remaining": None,
    "ratelimit_reset": None,
    "timestamp": None,          # ISO8601
}

def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))

def _record(url: str, params: dict, status, error=None, cached=False, r=None) -> None:
    LAST_HTTP.update({
        "url": url,
        "params": {k: v for k, v in (params or {}).items() if k != "api_token"},
        "status": status,
        "error": error,
        "cached": cached,
        "ratelimit_remaining": r.headers.get("X-RateLimit-Remaining") if r is not None else None,
        "ratelimit_reset": r.headers.get("X-RateLimit-Reset") if r is not None else None,
        "timestamp": _now_iso(),
    })

# ---------------- Caching + HTTP ----------------
_CACHE: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Tuple[float, Any]] = {}

def _cache_key(url: str, params: dict) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    return (url, tuple(sorted((k, str(v)) for k, v in (params or {}).items())))

def clear_cache() -> None:
    _CACHE.clear()

def _sleep_for_429(r, fallback: float) -> float:
    ra = r.headers.get("Retry-After")
    if ra:
        try:
            return max(1.0, float(ra))
        except ValueError:
            pass
    reset = r.headers.get("X-RateLimit-Reset") or r.headers.get("x-ratelimit-reset")
    if reset:
        try:
            delta = float(reset) - time.time()
            return max(1.0, min(delta + 1.0, 600.0))
        except ValueError:
            pass
    return min(max(fallback, 1.0), 120.0)

def _get(url: str, params: dict, retries: int = None, backoff: float = None, use_cache: bool = True) -> Any:
    """
    Resilient GET against SportMonks:
      - short in-proc cache (PROVIDER_CACHE_TTL_SEC)
      - 429 honours Retry-After / reset headers
      - 5xx and network errors retried with capped exponential backoff
      - raises ProviderError once retries are exhausted or the provider reports an error
      - records LAST_HTTP for diagnostics
    Returns the response's "data" member.
    """
    retries = max(1, settings.PROVIDER_RETRIES if retries is None else retries)
    wait = backoff if backoff is not None else settings.PROVIDER_BACKOFF_SEC
    params = dict(params or {})
    key = _cache_key(url, params)

    if use_cache and key in _CACHE:
        ts, data = _CACHE[key]
        if time.time() - ts < settings.PROVIDER_CACHE_TTL_SEC:
            _record(url, params, "cached", cached=True)
            return data

    query = {**params, "api_token": settings.SPORTMONKS_API_KEY}
    last_error = None
    for attempt in range(retries):
        last_attempt = attempt == retries - 1
        try:
            r = requests.get(url, headers=HEADERS, params=query, timeout=settings.PROVIDER_TIMEOUT_SEC)
        except requests.RequestException as e:
            last_error = repr(e)
            _record(url, params, "error", error=last_error)
            logger.warning("provider request failed (attempt %s/%s): %s", attempt + 1, retries, last_error)
            if not last_attempt:
                time.sleep(wait)
                wait = min(wait * 2, 5.0)
            continue

        status = r.status_code
        if status == 429:
            last_error = "429 rate_limited"
            _record(url, params, status, error=last_error, r=r)
            if not last_attempt:
                delay = _sleep_for_429(r, wait)
                logger.info("provider rate limited, sleeping %.1fs", delay)
                time.sleep(delay)
                wait = min(wait * 2, 5.0)
            continue

        if 500 <= status < 600:
            last_error = f"{status} server_error"
            _record(url, params, status, error=last_error, r=r)
            if not last_attempt:
                time.sleep(wait)
                wait = min(wait * 2, 5.0)
            continue

        if status >= 400:
            _record(url, params, status, error=f"{status} client_error", r=r)
            raise ProviderError(f"{url} -> HTTP {status}")

        try:
            j = r.json() or {}
        except ValueError:
            j = {}

        provider_err = None
        if isinstance(j.get("error"), dict):
            provider_err = j["error"].get("message") or str(j["error"])
        elif isinstance(j.get("message"), str) and "data" not in j:
            provider_err = j["message"]

        _record(url, params, status, error=provider_err, r=r)
        if provider_err:
            raise ProviderError(provider_err)

        data = j.get("data")
        _CACHE[key] = (time.time(), data)
        return data

    raise ProviderError(f"{url} failed after {retries} attempts: {last_error}")

# ---------------- Normalization ----------------
def _unwrap(value: Any) -> Any:
    # v2 includes arrive either bare or wrapped as {"data": ...}
    if isinstance(value, dict) and set(value.keys()) == {"data"}:
        return value["data"]
    return value

def _as_list(value: Any) -> List[dict]:
    value = _unwrap(value)
    return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []

def _team(raw: dict, key: str) -> dict:
    t = _unwrap(raw.get(key))
    if not isinstance(t, dict):
        t = {}
    return {
        "id": t.get("id") or raw.get(f"{key}_id"),
        "name": t.get("name") or "",
        "code": t.get("code") or "",
    }

def _lineup_player(p: dict) -> dict:
    meta = p.get("lineup") if isinstance(p.get("lineup"), dict) else {}
    pos = _unwrap(p.get("position"))
    position = pos.get("name") if isinstance(pos, dict) else pos
    return {
        "id": p.get("id"),
        "fullname": p.get("fullname") or p.get("name") or "Unknown Player",
        "team_id": meta.get("team_id", p.get("team_id")),
        "position": position or "",
        "captain": bool(meta.get("captain", p.get("captain", False))),
        "wicketkeeper": bool(meta.get("wicketkeeper", p.get("wicketkeeper", False))),
        "substitute": bool(meta.get("substitution", p.get("substitute", False))),
        "image_path": p.get("image_path"),
    }

def normalize_fixture(raw: dict) -> dict:
    """Flatten a v2 fixture payload (with includes) into the snapshot shape the engine consumes."""
    raw = _unwrap(raw) or {}
    return {
        "id": raw.get("id"),
        "status": raw.get("status") or "",
        "note": raw.get("note") or "",
        "starting_at": raw.get("starting_at"),
        "localteam": _team(raw, "localteam"),
        "visitorteam": _team(raw, "visitorteam"),
        "lineup": [_lineup_player(p) for p in _as_list(raw.get("lineup")) if p.get("id")],
        "batting": _as_list(raw.get("batting")),
        "bowling": _as_list(raw.get("bowling")),
        "balls": _as_list(raw.get("balls")),
        "runs": _as_list(raw.get("runs")),
        "scoreboards": _as_list(raw.get("scoreboards")),
        "toss": raw.get("toss_won_team_id"),
        "elected": raw.get("elected"),
    }

# ---------------- Fixtures ----------------
def fetch_match_snapshot(provider_match_id, use_cache: bool = True) -> Optional[dict]:
    """
    One point-in-time snapshot for a fixture, or None.
    None means "try again next tick", never "this match has no data".
    """
    url = f"{BASE_URL}/fixtures/{provider_match_id}"
    try:
        raw = _get(url, {"include": FIXTURE_INCLUDES}, use_cache=use_cache)
    except ProviderError as e:
        logger.warning("snapshot fetch failed for fixture %s: %s", provider_match_id, e)
        return None
    if not isinstance(raw, dict) or not raw.get("id"):
        logger.warning("snapshot for fixture %s had no fixture body", provider_match_id)
        return None
    return normalize_fixture(raw)

# ---------------- Match state helpers ----------------
def is_finished(snapshot: dict) -> bool:
    status = (snapshot.get("status") or "").strip().lower()
    if status in FINISHED_STATUSES:
        return True
    if "won by" in (snapshot.get("note") or "").lower():
        return True
    runs = snapshot.get("runs") or []
    if len(runs) >= 2:
        second = sorted(runs, key=lambda r: int(r.get("inning") or 0))[1]
        total = second.get("total_overs") or second.get("max_overs")
        try:
            if total and float(second.get("overs") or 0) >= float(total):
                return True
        except (TypeError, ValueError):
            pass
    return False

def is_void(snapshot: dict) -> bool:
    return (snapshot.get("status") or "").strip().lower() in VOID_STATUSES

def team_scores(snapshot: dict) -> Dict[Any, str]:
    """team provider id -> "runs/wickets" from the runs include."""
    out: Dict[Any, str] = {}
    for r in snapshot.get("runs") or []:
        tid = r.get("team_id")
        if tid is None:
            continue
        out[tid] = f"{r.get('score', 0)}/{r.get('wickets', 0)}"
    return out

def result_summary(snapshot: dict) -> str:
    note = (snapshot.get("note") or "").strip()
    if note:
        return note
    scores = team_scores(snapshot)
    a = snapshot.get("localteam") or {}
    b = snapshot.get("visitorteam") or {}
    return f"{a.get('name') or 'Team A'} {scores.get(a.get('id'), '0/0')} vs {b.get('name') or 'Team B'} {scores.get(b.get('id'), '0/0')}"
