"""Card telemetry: event logging and summary reader."""

import json
import os
from collections import deque
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Optional

from text_utils import normalize_whitespace

_BACKEND_DIR = Path(__file__).resolve().parent

CARD_TELEMETRY_PATH = _BACKEND_DIR / (
    os.getenv("CARD_TELEMETRY_LOG", "card_telemetry.log") or "card_telemetry.log"
)


def telemetry_enabled() -> bool:
    return (os.getenv("CARD_TELEMETRY_ENABLED", "1") or "1").strip().lower() in (
        "1", "true", "yes", "on",
    )


def append_card_telemetry(event: str, payload: Optional[dict] = None) -> None:
    if not telemetry_enabled():
        return
    try:
        data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": normalize_whitespace(event or "event"),
            "payload": payload or {},
        }
        CARD_TELEMETRY_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(CARD_TELEMETRY_PATH, "a", encoding="utf-8") as f:
            f.write(json.dumps(data, ensure_ascii=False, default=str) + "\n")
    except (OSError, TypeError, ValueError):
        pass


def _parse_iso_utc(ts_raw: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(str(ts_raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def read_card_telemetry_summary(hours: int = 24, limit: int = 6) -> dict:
    h = max(1, min(168, int(hours or 24)))
    n = max(1, min(25, int(limit or 6)))
    now_utc = datetime.now(timezone.utc)
    cutoff = now_utc - timedelta(hours=h)

    counts: dict[str, int] = {}
    closure_reason_counts: dict[str, int] = {}
    recent: deque = deque(maxlen=n)
    parse_errors = 0
    file_exists = CARD_TELEMETRY_PATH.exists()

    if file_exists:
        try:
            with open(CARD_TELEMETRY_PATH, "r", encoding="utf-8") as f:
                for line in f:
                    raw = (line or "").strip()
                    if not raw:
                        continue
                    try:
                        item = json.loads(raw)
                    except ValueError:
                        parse_errors += 1
                        continue
                    if not isinstance(item, dict):
                        parse_errors += 1
                        continue
                    ts = _parse_iso_utc(str(item.get("ts") or ""))
                    if not ts or ts < cutoff:
                        continue
                    event = normalize_whitespace(str(item.get("event") or "event")) or "event"
                    counts[event] = counts.get(event, 0) + 1
                    if event == "card_closure":
                        payload_obj = item.get("payload") if isinstance(item.get("payload"), dict) else {}
                        reason = normalize_whitespace(str(payload_obj.get("reason") or "")) or "UNKNOWN"
                        closure_reason_counts[reason] = closure_reason_counts.get(reason, 0) + 1
                    recent.append(
                        {
                            "ts": ts.isoformat(),
                            "event": event,
                            "payload": item.get("payload") or {},
                        }
                    )
        except OSError:
            pass

    cards = counts.get("card_issued", 0)
    closures = counts.get("card_closure", 0)
    total = cards + closures
    closure_rate = round((closures / total) * 100.0, 2) if total > 0 else 0.0

    return {
        "status": "ok",
        "now_utc": now_utc.isoformat(),
        "window_hours": h,
        "telemetry_enabled": telemetry_enabled(),
        "file_exists": file_exists,
        "file_path": str(CARD_TELEMETRY_PATH.name),
        "counts": counts,
        "closure_reason_counts": closure_reason_counts,
        "closure_rate_percent": closure_rate,
        "novelty_retry_count": counts.get("novelty_retry", 0),
        "model_error_count": counts.get("model_error", 0),
        "side_task_failure_count": counts.get("side_synthesis_failed", 0),
        "recent": list(recent),
        "parse_errors": parse_errors,
    }
