# automate_reconcile.py
# Cron job: settle anything the live scheduler missed and replay dead-lettered payouts.
from __future__ import annotations
import os, sys, time
from datetime import datetime, timezone
import requests

# ------------------------------------------------------------
# Config via ENV (sane defaults)
# ------------------------------------------------------------
BASE_URL          = os.getenv("FL_BASE_URL", "http://localhost:8000")
FORCE_MATCH_IDS   = os.getenv("FL_FORCE_MATCH_IDS", "")             # CSV of match ids to force-settle first
REPLAY_FAILURES   = int(os.getenv("FL_REPLAY_FAILURES", "1"))       # 0 to skip the dead-letter replay
FAIL_ON_MISSED    = int(os.getenv("FL_FAIL_ON_MISSED", "0"))        # 1 = exit non-zero if prizes still missing

# ------------------------------------------------------------
# HTTP helper
# ------------------------------------------------------------
def srequest(s: requests.Session, method: str, path: str, *, params=None, json=None, timeout=120):
    url = f"{BASE_URL}{path}"
    try:
        r = s.request(method, url, params=params, json=json, timeout=timeout)
        status = r.status_code
        if status == 404:
            print(f"[{method}] {url} -> 404")
            return None
        r.raise_for_status()
        try:
            body = r.json()
        except ValueError:
            body = {"raw": r.text}
        print(f"[{method}] {url} -> {status}")
        return body
    except requests.RequestException as e:
        print(f"[HTTP-ERR] {method} {url}: {e}")
        return None

def _iso_now():
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

def _match_ids(csv: str) -> list[int]:
    out = []
    for part in (csv or "").split(","):
        part = part.strip()
        if part.isdigit():
            out.append(int(part))
    return out

# ------------------------------------------------------------
# Main
# ------------------------------------------------------------
def reconcile() -> int:
    print(f"=== reconcile @ {_iso_now()} ===")
    with requests.Session() as s:
        # 0) scheduler heartbeat
        st = srequest(s, "GET", "/scheduler/status")
        if isinstance(st, dict):
            print(f"[scheduler] running={st.get('running')} tracked={st.get('tracked')} in_flight={st.get('in_flight')}")

        # 1) operator-requested force settles (stuck matches)
        for mid in _match_ids(FORCE_MATCH_IDS):
            res = srequest(s, "POST", f"/matches/{mid}/finalize-contests")
            if isinstance(res, dict):
                print(f"[force-settle] match={mid} ok={res.get('ok')}")
            time.sleep(0.5)

        # 2) completed matches with unpaid contests or missed prizes (also replays failures)
        rec = srequest(s, "POST", "/settlement/reconcile")
        if isinstance(rec, dict):
            print(f"[reconcile] matches={len(rec.get('matches') or [])} replay={rec.get('replay')}")

        # 3) one more replay pass for anything that failed during step 2
        if REPLAY_FAILURES:
            rep = srequest(s, "POST", "/settlement/failures/replay")
            if isinstance(rep, dict):
                print(f"[replay] checked={rep.get('checked')} resolved={rep.get('resolved')} still_failing={rep.get('still_failing')}")

        # 4) what is still owed
        missed = srequest(s, "GET", "/settlement/missed-prizes") or []
        open_failures = srequest(s, "GET", "/settlement/failures") or []
        print(f"[audit] missed_prizes={len(missed)} open_failures={len(open_failures)}")
        for row in missed[:20]:
            print(f"  contest={row.get('contest_id')} entry={row.get('entry_id')} rank={row.get('rank')} expected={row.get('expected_prize')}")

    if FAIL_ON_MISSED and (missed or open_failures):
        return 2
    return 0

if __name__ == "__main__":
    try:
        sys.exit(reconcile())
    except Exception as e:
        print(f"[FATAL] {e}", file=sys.stderr)
        sys.exit(1)
