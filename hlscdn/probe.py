#!/usr/bin/env python3
# python -m hlscdn.probe --url http://localhost:3001 --content demo --device mobile --bandwidth 3000000

"""
End-to-end smoke probe for a running server.

Walks the player path once: health -> master -> first variant -> ranged segment
-> analytics post, printing one tagged line per step.
"""

from __future__ import annotations

import argparse
import json
import urllib.error
import urllib.request
from typing import Dict, Optional, Tuple

from hlscdn.manifest import count_segments


DEFAULT_URL = "http://localhost:3001"
PROBE_RANGE = "bytes=0-99"


class Probe:
    def __init__(self, base_url: str, timeout_s: float = 2.0, debug: bool = False):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._debug = debug

    def _log(self, *args):
        if self._debug:
            print("[PROBE]", *args)

    def request(
        self,
        path: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        payload: Optional[Dict] = None,
    ) -> Tuple[int, Dict[str, str], bytes]:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        hdrs = dict(headers or {})
        if data is not None:
            hdrs["Content-Type"] = "application/json"
        req = urllib.request.Request(self.base_url + path, data=data, headers=hdrs, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                body = resp.read()
                status = resp.status
                resp_headers = dict(resp.headers.items())
        except urllib.error.HTTPError as e:
            body = e.read()
            status = e.code
            resp_headers = dict(e.headers.items())

        self._log(f"{method} {path} -> {status} ({len(body)} bytes)")
        return status, resp_headers, body

    def run(self, content_id: str, device: str, bandwidth: int) -> Dict:
        status, _, body = self.request("/health")
        health = json.loads(body)
        print(f"[PROBE] health status={status} sessions={health.get('activeSessions')} events={health.get('analyticsEvents')}")

        status, headers, body = self.request(
            f"/manifest/{content_id}/master.m3u8",
            headers={"X-Device-Type": device, "X-Bandwidth-Estimate": str(bandwidth)},
        )
        master = body.decode("utf-8")
        session_id = headers.get("X-Session-ID")
        variants = [ln for ln in master.splitlines() if ln.startswith("video/")]
        print(f"[PROBE] master status={status} edge={headers.get('X-Edge-Location')} session={session_id} variants={len(variants)}")
        if not variants:
            raise RuntimeError("master manifest has no variants")

        top = variants[-1]
        quality_id = int(top.split("/")[1])
        status, _, body = self.request(f"/manifest/{content_id}/{top}")
        print(f"[PROBE] variant q={quality_id} status={status} segments={count_segments(body.decode('utf-8'))}")

        status, headers, body = self.request(
            f"/segment/{content_id}/{quality_id}/0.ts",
            headers={"Range": PROBE_RANGE, "X-Session-ID": session_id or ""},
        )
        print(f"[PROBE] segment status={status} range={headers.get('Content-Range')} bytes={len(body)}")

        status, _, body = self.request(
            "/analytics/events",
            method="POST",
            headers={"X-Session-ID": session_id or ""},
            payload={"events": [{"type": "rebuffer"}, {"type": "bandwidth_sample", "bandwidth": bandwidth}]},
        )
        result = json.loads(body)
        print(f"[PROBE] analytics status={status} qoe={result.get('qoeScore')} recs={result.get('recommendations')}")
        return result


def main() -> None:
    ap = argparse.ArgumentParser("Probe a running HLS CDN mock.")
    ap.add_argument("--url", default=DEFAULT_URL)
    ap.add_argument("--content", default="demo")
    ap.add_argument("--device", default="desktop")
    ap.add_argument("--bandwidth", type=int, default=5_000_000)
    ap.add_argument("--timeout-s", type=float, default=2.0)
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    probe = Probe(args.url, timeout_s=args.timeout_s, debug=args.debug)
    try:
        probe.run(args.content, args.device, args.bandwidth)
    except urllib.error.URLError as e:
        raise SystemExit(f"[PROBE] server unreachable at {args.url}: {e}")


if __name__ == "__main__":
    main()
