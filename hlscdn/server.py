#!/usr/bin/env python3
# python -m hlscdn.server --debug --port 3001 --edge-selector round_robin

from __future__ import annotations

import argparse
import json
import re
import time
import traceback
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Pattern, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from hlscdn.analytics import (
    compute_qoe,
    current_bandwidth,
    ingest_events,
    recommendations,
    track,
)
from hlscdn.auth import validate_token
from hlscdn.config import DEPLOYMENT, CdnConfig
from hlscdn.edges import EDGE_LOCATIONS, SELECTOR_REGISTRY, make_selector
from hlscdn.errors import BadRequest, HttpError, MethodNotAllowed, NotFound
from hlscdn.ladder import (
    QUALITY_LADDER,
    find_level,
    is_viable,
    ladder_from_json,
    playable_qualities,
    recommend_quality,
)
from hlscdn.manifest import build_master_manifest, build_variant_manifest
from hlscdn.segment import serve_segment
from hlscdn.store import (
    STORE_REGISTRY,
    make_store,
    new_session_id,
    now_ms,
    record_played_quality,
    register_session,
)


HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_DEVICE = "desktop"
DEFAULT_BANDWIDTH_BPS = 5_000_000
MAX_BANDWIDTH_HINT_BPS = 1_000_000_000_000   # 1 Tbps

CORS_ALLOW_HEADERS = (
    "Content-Type, Range, X-Session-ID, X-Device-ID, X-Device-Type, X-Bandwidth-Estimate, Authorization"
)
CORS_EXPOSE_HEADERS = "Content-Range, X-CDN-Cache, X-Edge-Location, X-Session-ID, X-Bandwidth-Estimate"

# (pattern, allowed methods, handler method name); an optional /api prefix is accepted
_API = r"^(?:/api)?"
ROUTES: List[Tuple[Pattern, Tuple[str, ...], str]] = [
    (re.compile(_API + r"/health/?$"), ("GET",), "_health"),
    (re.compile(_API + r"/manifest/(?P<content_id>[^/]+)/master\.m3u8$"), ("GET",), "_master"),
    (
        re.compile(_API + r"/manifest/(?P<content_id>[^/]+)/video/(?P<quality_id>[^/]+)/index\.m3u8$"),
        ("GET",),
        "_variant",
    ),
    (
        re.compile(_API + r"/segment/(?P<content_id>[^/]+)/(?P<quality_id>[^/]+)/(?P<segment_id>[^/]+\.ts)$"),
        ("GET",),
        "_segment",
    ),
    (re.compile(_API + r"/analytics/events/?$"), ("POST",), "_analytics"),
    (re.compile(_API + r"/auth/validate/?$"), ("POST",), "_auth"),
    (re.compile(_API + r"/bandwidth/estimate/?$"), ("GET",), "_bandwidth"),
]


def cors_headers(h: BaseHTTPRequestHandler) -> None:
    h.send_header("Access-Control-Allow-Origin", "*")
    h.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
    h.send_header("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS)
    h.send_header("Access-Control-Expose-Headers", CORS_EXPOSE_HEADERS)


def parse_bandwidth_hint(raw: Optional[str]) -> int:
    """
    Leading integer of the header; missing, unparsable or non-positive -> default.
    Values above MAX_BANDWIDTH_HINT_BPS are clamped to it.
    """
    if not raw:
        return DEFAULT_BANDWIDTH_BPS
    m = re.match(r"\s*(\d+)", raw)
    if not m:
        return DEFAULT_BANDWIDTH_BPS
    digits = m.group(1).lstrip("0")
    if not digits:
        return DEFAULT_BANDWIDTH_BPS
    # compare lengths first, int() refuses very long digit strings
    if len(digits) > len(str(MAX_BANDWIDTH_HINT_BPS)):
        return MAX_BANDWIDTH_HINT_BPS
    return min(int(digits), MAX_BANDWIDTH_HINT_BPS)


def parse_quality_id(raw: str, ladder) -> int:
    try:
        qid = int(raw)
    except ValueError:
        raise NotFound(f"Unknown quality '{raw}'")
    if find_level(qid, ladder) is None:
        raise NotFound(f"Unknown quality '{raw}'")
    return qid


def make_handler(state: Dict, cfg: CdnConfig):
    store = state["store"]
    selector = state["selector"]
    ladder = state["ladder"]
    debug = cfg.debug
    verbose = cfg.verbose

    def dprint(*args):
        if debug:
            print(*args)

    def vprint(*args):
        if verbose:
            print(*args)

    class RequestHandler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def log_message(self, format, *args):
            return

        # ---------- replies ----------
        def _send(self, status: int, body: bytes, content_type: str, headers: Optional[Dict[str, str]] = None):
            self.send_response(status)
            cors_headers(self)
            self.send_header("Content-Type", content_type)
            extra = dict(headers or {})
            extra.setdefault("Content-Length", str(len(body)))
            for k, v in extra.items():
                self.send_header(k, v)
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(body)
            dprint(f"[HTTP] rid={state['req_id']} {self.command} {self.path} -> {status} ({len(body)} bytes)")

        def _reply_json(self, obj, status: int = 200, headers: Optional[Dict[str, str]] = None):
            body = json.dumps(obj).encode("utf-8")
            self._send(status, body, "application/json; charset=utf-8", headers)

        def _reply_text(self, text: str, status: int = 200, content_type: str = "text/plain; charset=utf-8",
                        headers: Optional[Dict[str, str]] = None):
            self._send(status, text.encode("utf-8"), content_type, headers)

        # ---------- request helpers ----------
        def _read_raw(self) -> bytes:
            try:
                content_length = int(self.headers.get("Content-Length", "0"))
            except ValueError:
                content_length = 0
            return self.rfile.read(content_length) if content_length > 0 else b""

        def _json_body(self) -> Dict:
            raw = self._raw or b"{}"
            try:
                body = json.loads(raw.decode("utf-8"))
            except (ValueError, UnicodeDecodeError) as e:
                dprint(f"[HTTP] rid={state['req_id']} BAD_JSON err={e}")
                raise BadRequest("Invalid JSON body")
            if not isinstance(body, dict):
                raise BadRequest("JSON body must be an object")
            return body

        def _client_ip(self) -> str:
            fwd = self.headers.get("X-Forwarded-For")
            if fwd:
                return fwd.split(",")[0].strip()
            return self.client_address[0]

        def _session_header(self) -> Optional[str]:
            return self.headers.get("X-Session-ID") or None

        # ---------- dispatch ----------
        def _dispatch(self, method: str):
            state["req_id"] += 1
            self._raw = self._read_raw()
            url = urlsplit(self.path)
            try:
                for pattern, methods, name in ROUTES:
                    m = pattern.match(url.path)
                    if not m:
                        continue
                    if method not in methods:
                        raise MethodNotAllowed(", ".join(methods + ("OPTIONS",)))
                    params = {k: unquote(v) for k, v in m.groupdict().items()}
                    query = parse_qs(url.query)
                    return getattr(self, name)(params, query)
                raise NotFound(f"No route for {url.path}")
            except HttpError as e:
                dprint(f"[HTTP] rid={state['req_id']} {method} {url.path} -> {e.status} {e.message}")
                return self._reply_json(e.to_json(), status=e.status, headers=e.headers)
            except Exception as e:
                print(f"[ERR] rid={state['req_id']} {method} {url.path}: {e}")
                vprint(traceback.format_exc())
                return self._reply_json({"error": "Internal server error"}, status=500)

        def do_OPTIONS(self):
            self._read_raw()
            self.send_response(204)
            cors_headers(self)
            self.send_header("Content-Length", "0")
            self.end_headers()
            dprint(f"[HTTP] OPTIONS {self.path} from {self.client_address}")

        def do_GET(self):
            self._dispatch("GET")

        def do_POST(self):
            self._dispatch("POST")

        def do_PUT(self):
            self._dispatch("PUT")

        def do_DELETE(self):
            self._dispatch("DELETE")

        def do_PATCH(self):
            self._dispatch("PATCH")

        def do_HEAD(self):
            self._dispatch("HEAD")

        # ---------- routes ----------
        def _health(self, params, query):
            self._reply_json({
                "service": "healthy",
                "timestamp": now_ms(),
                "uptimeSeconds": round(time.time() - state["startup_time"], 3),
                "edges": [e.to_json() for e in selector.edges],
                "activeSessions": store.session_count(),
                "analyticsEvents": store.event_count(),
                "deployment": DEPLOYMENT,
                "environment": cfg.environment,
            })

        def _master(self, params, query):
            content_id = params["content_id"]
            device = self.headers.get("X-Device-Type") or DEFAULT_DEVICE
            bandwidth = parse_bandwidth_hint(self.headers.get("X-Bandwidth-Estimate"))
            session_id = self._session_header() or new_session_id()

            edge = selector.select(self._client_ip())
            qualities = playable_qualities(device, bandwidth, ladder)
            manifest = build_master_manifest(qualities, edge.name, cfg.audio_tracks)

            register_session(store, session_id, content_id, device, edge.name, qualities)

            dprint(
                f"[MANIFEST] rid={state['req_id']} content={content_id} device={device} bw={bandwidth} "
                f"edge={edge.name} session={session_id} qualities={[q.id for q in qualities]}"
            )
            vprint(f"[MANIFEST][RAW]\n{manifest}")

            self._reply_text(manifest, content_type=HLS_CONTENT_TYPE, headers={
                "Cache-Control": "no-cache",
                "X-CDN-Cache": "MISS",
                "X-Edge-Location": edge.name,
                "X-Session-ID": session_id,
            })

        def _variant(self, params, query):
            content_id = params["content_id"]
            quality_id = parse_quality_id(params["quality_id"], ladder)
            is_live = query.get("live", ["false"])[0] == "true"

            playlist = build_variant_manifest(content_id, quality_id, is_live, cfg.segment_duration_s)
            self._reply_text(playlist, content_type=HLS_CONTENT_TYPE, headers={
                "Cache-Control": "no-cache" if is_live else "max-age=3600",
                "X-CDN-Cache": "HIT",
            })

        def _segment(self, params, query):
            content_id = params["content_id"]
            quality_id = parse_quality_id(params["quality_id"], ladder)
            range_header = self.headers.get("Range")

            resp = serve_segment(content_id, quality_id, params["segment_id"], range_header)
            edge = selector.select(self._client_ip())

            # store is updated before the reply is sent
            session_id = self._session_header()
            segment_id = params["segment_id"][:-3]
            track(store, "segment_delivered", {
                "sessionId": session_id,
                "contentId": content_id,
                "qualityId": quality_id,
                "segmentId": segment_id,
                "byteRange": range_header or "full",
            }, edge=edge.name)
            if session_id is not None:
                record_played_quality(store, session_id, quality_id)

            headers = dict(resp.headers)
            content_type = headers.pop("Content-Type")
            headers["X-Edge-Location"] = edge.name
            self._send(resp.status, resp.body, content_type, headers)

            dprint(
                f"[SEG] rid={state['req_id']} {content_id}/{quality_id}/{segment_id} "
                f"range={range_header or 'full'} -> {resp.status} {len(resp.body)}B edge={edge.name}"
            )

        def _analytics(self, params, query):
            body = self._json_body()
            session_id = self._session_header()
            ip = self._client_ip()

            received = ingest_events(store, session_id, body.get("events"), lambda: selector.select(ip).name)
            qoe = compute_qoe(store, session_id, max_quality_id=len(ladder) - 1)
            recs = recommendations(store, session_id)

            dprint(f"[EVT] rid={state['req_id']} session={session_id} received={received} qoe={qoe:.3f}")
            vprint(f"[EVT][RAW] rid={state['req_id']} events={body.get('events')}")

            self._reply_json({"received": received, "qoeScore": qoe, "recommendations": recs})

        def _auth(self, params, query):
            body = self._json_body()
            result = validate_token(body.get("token"), body.get("contentId"), body.get("deviceId"))
            dprint(f"[AUTH] rid={state['req_id']} content={body.get('contentId')} device={body.get('deviceId')} ok")
            self._reply_json(result)

        def _bandwidth(self, params, query):
            session_id = self._session_header()
            bw = current_bandwidth(store, session_id)
            rec = recommend_quality(bw, ladder)
            self._reply_json({
                "estimatedBandwidth": bw,
                "recommendedQuality": rec.id,
                "availableQualities": [
                    {"id": q.id, "bitrate": q.bitrate_bps, "resolution": q.resolution, "viable": is_viable(q, bw)}
                    for q in ladder
                ],
            }, headers={"X-Bandwidth-Estimate": str(int(bw))})

    return RequestHandler


def build_state(cfg: CdnConfig) -> Dict:
    ladder = ladder_from_json(cfg.ladder_path) if cfg.ladder_path else list(QUALITY_LADDER)
    return {
        "store": make_store(cfg.store),
        "selector": make_selector(cfg.edge_selector, EDGE_LOCATIONS, seed=cfg.seed, fixed_edge=cfg.fixed_edge),
        "ladder": ladder,
        "req_id": 0,
        "startup_time": time.time(),
    }


def build_server(cfg: CdnConfig, state: Optional[Dict] = None) -> Tuple[ThreadingHTTPServer, Dict]:
    state = state if state is not None else build_state(cfg)
    handler_cls = make_handler(state, cfg)
    server = ThreadingHTTPServer((cfg.host, int(cfg.port)), handler_cls)
    return server, state


def run(cfg: CdnConfig) -> None:
    server, state = build_server(cfg)
    host, port = server.server_address[:2]

    print(f"[BOOT] Ladder: {len(state['ladder'])} qualities | seg_dur: {cfg.segment_duration_s}s")
    print(f"[BOOT] Edges: {', '.join(e.name for e in state['selector'].edges)} (selector={cfg.edge_selector})")
    print(f"[BOOT] Store: {cfg.store} | env: {cfg.environment}")
    print(f"[BOOT] Listening on http://{host}:{port}  (CORS enabled)")
    if cfg.debug:
        print("[BOOT] Debug enabled")
        if cfg.verbose:
            print("[BOOT] Verbose debug enabled")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n[BOOT] KeyboardInterrupt -> shutting down")
    finally:
        server.server_close()
        print("[BOOT] Server closed")


def build_parser() -> argparse.ArgumentParser:
    env = CdnConfig.from_env()
    ap = argparse.ArgumentParser("Mock HLS CDN backend.", formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    ap.add_argument("--host", default=env.host)
    ap.add_argument("--port", type=int, default=env.port)
    ap.add_argument("--env", default=env.environment, help="Environment name reported by /health")
    ap.add_argument("--edge-selector", choices=sorted(SELECTOR_REGISTRY), default=env.edge_selector)
    ap.add_argument("--fixed-edge", default=env.fixed_edge, help="Edge name for --edge-selector fixed")
    ap.add_argument("--store", choices=sorted(STORE_REGISTRY), default=env.store)
    ap.add_argument("--seed", type=int, default=env.seed, help="Seed for the random edge selector")
    ap.add_argument("--segment-duration", type=int, default=env.segment_duration_s, help="seconds")
    ap.add_argument("--ladder", default=env.ladder_path, help="Path to ladder.json (default: built-in ladder)")
    ap.add_argument("--debug", action="store_true", default=env.debug, help="Print informative debug lines")
    ap.add_argument("--verbose", action="store_true", help="More verbose debug (raw manifests/events)")
    return ap


def config_from_args(args: argparse.Namespace) -> CdnConfig:
    return CdnConfig(
        host=args.host,
        port=int(args.port),
        environment=args.env,
        edge_selector=args.edge_selector,
        fixed_edge=args.fixed_edge,
        store=args.store,
        seed=args.seed,
        segment_duration_s=int(args.segment_duration),
        ladder_path=args.ladder,
        debug=args.debug,
        verbose=args.verbose,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.segment_duration <= 0:
        raise SystemExit("--segment-duration must be > 0")
    run(config_from_args(args))


if __name__ == "__main__":
    main()
