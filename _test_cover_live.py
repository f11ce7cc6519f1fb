"""
_test_cover_live.py — local smoke-test for cover resolution against i.scdn.co.

Tests exactly the code path that GET /cover/download uses:
  cover_client.CoverClient(RequestsTransport())
  client.resolve(url, max_quality) / client.download(url, max_quality)

Usage:
    python _test_cover_live.py
    python _test_cover_live.py --url https://i.scdn.co/image/ab67616d00001e02...
    python _test_cover_live.py --max --save
"""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# ── Make sure cover_client is importable from this directory ────────────────
HERE = Path(__file__).parent
if str(HERE) not in sys.path:
    sys.path.insert(0, str(HERE))

import cover_client as cc

DOWNLOADS_DIR = HERE / "downloads_test"
DEFAULT_URL   = "https://i.scdn.co/image/ab67616d00001e02ff9ca10b55ce82ae553c8228"

MAGIC = {
    b"\xff\xd8\xff":      "JPEG",
    b"\x89PNG\r\n\x1a\n": "PNG",
    b"RIFF":              "WEBP (RIFF)",
}

def detect(data: bytes) -> str:
    for magic, label in MAGIC.items():
        if data[:len(magic)] == magic:
            return label
    return f"UNKNOWN ({data[:8].hex()})"

def _ok(m):   print(f"  ✅  {m}")
def _info(m): print(f"  ℹ   {m}")
def _warn(m): print(f"  ⚠   {m}")
def _fail(m): print(f"  ❌  {m}")


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--url",     default=DEFAULT_URL,
                   help="Spotify CDN cover URL (any size)")
    p.add_argument("--max",     action="store_true",
                   help="Request max resolution (probes the CDN first)")
    p.add_argument("--timeout", type=float, default=cc.COVER_TIMEOUT,
                   help="Per-request timeout in seconds")
    p.add_argument("--save",    action="store_true",
                   help="Save downloaded cover to downloads_test/")
    args = p.parse_args()

    print()
    print("=" * 60)
    print("  Cover client — live CDN test")
    print("=" * 60)

    with cc.RequestsTransport(timeout=args.timeout) as transport:
        client = cc.CoverClient(transport)

        # ── 1. Resolve ────────────────────────────────────────────────────
        size = cc.size_of(args.url)
        _info(f"Input size: {size.name if size else 'unrecognised'}")

        t0 = time.time()
        resolved = client.resolve(args.url, max_quality=args.max)
        resolved_size = cc.size_of(resolved)
        _ok(f"Resolved in {time.time()-t0:.2f}s → "
            f"{resolved_size.name if resolved_size else 'unrecognised'}")
        print(f"  {resolved}")
        if args.max and resolved_size is not cc.CoverSize.MAX:
            _warn("Max resolution not available, fell back to 640x640")
        print()

        # ── 2. Download ───────────────────────────────────────────────────
        _info(f"Downloading (max_quality={args.max})…")
        t1 = time.time()
        try:
            data = client.download(args.url, max_quality=args.max)
        except cc.CoverError as e:
            _fail(f"Download failed: {e}")
            sys.exit(1)
        elapsed = time.time() - t1
        _ok(f"Size: {len(data)/1024:.1f} KB | Downloaded in {elapsed:.2f}s")

    # ── 3. Header check ───────────────────────────────────────────────────
    detected = detect(data)
    if detected == "JPEG":
        _ok(f"Header: {detected} ✓")
    else:
        _warn(f"Unexpected header: {detected}")

    # ── 4. Save ───────────────────────────────────────────────────────────
    if args.save:
        DOWNLOADS_DIR.mkdir(parents=True, exist_ok=True)
        out = DOWNLOADS_DIR / f"{resolved.rsplit('/', 1)[-1]}.jpg"
        out.write_bytes(data)
        _ok(f"Saved → {out}")

    print()
    print("=" * 60)
    print("  ALL TESTS PASSED")
    print("=" * 60)
    print()


if __name__ == "__main__":
    main()
