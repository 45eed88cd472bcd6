from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import shutil
from pathlib import Path
from typing import List, Optional

from . import __version__
from .app import GlyphServices, build_services
from .config import AppConfig, RemoteConfig, default_config_path
from .errors import GlyphShareError, PermissionDenied, RemoteStoreError, TransportUnavailable
from .identity import looks_like_identity
from .logging_config import configure_logging
from .models import IMAGE_PREFIX
from .resolver import DEFAULT_SENTENCE, required_characters


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="glyphshare",
        description="Contribute hand-drawn glyphs to a shared pool and compose sentences from them.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", dest="config_path", type=Path, default=None, help="Path to a config JSON file.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("identity", help="Print this device's identity.")

    p_save = sub.add_parser("save", help="Save a drawn glyph for a character.")
    p_save.add_argument("character", help="The character the drawing depicts.")
    p_save.add_argument("image", type=Path, help="A .png file or a text file holding a data:image/ string.")

    p_resolve = sub.add_parser("resolve", help="Resolve a sentence to own, shared or typeface glyphs.")
    p_resolve.add_argument("sentence", nargs="?", default=DEFAULT_SENTENCE)

    sub.add_parser("diagnose", help="Check remote configuration and connectivity.")

    p_init = sub.add_parser("init-config", help="Write a config file with Firestore credentials.")
    p_init.add_argument("--api-key", required=True)
    p_init.add_argument("--project-id", required=True)
    p_init.add_argument("--database", default=None)
    p_init.add_argument("--data-dir", type=Path, default=None)
    return parser.parse_args(argv)


def read_image(path: Path) -> str:
    """Return the image at ``path`` as a data string."""
    if path.suffix.lower() == ".png":
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        return f"{IMAGE_PREFIX}png;base64,{encoded}"
    return path.read_text(encoding="utf-8").strip()


async def _cmd_save(services: GlyphServices, character: str, image: str) -> int:
    try:
        artifact_id = await services.save(character, image)
    except GlyphShareError as e:
        print(f"Save failed: {e}")
        return 1
    print(artifact_id)
    return 0


async def _cmd_resolve(services: GlyphServices, sentence: str) -> int:
    characters = required_characters(sentence)
    resolved, summary = await services.engine.resolve_with_summary(services.identity(), characters)
    for c in characters:
        glyph = resolved.get(c)
        print(f"{c}\t{glyph.provenance.value if glyph else 'typeface'}")
    print(f"own={summary.own} global={summary.global_} typeface={summary.fallback}")
    return 0


async def _cmd_diagnose(services: GlyphServices, config: AppConfig) -> int:
    ok = True
    print("Remote store configuration")
    if not config.remote.is_configured:
        print("  FAILED: remote store is not configured; running local-only")
        print("  Glyphs are kept on this device, so other users cannot see them.")
        print("  Fix: run 'glyphshare init-config --api-key ... --project-id ...'")
        print("       or set GLYPHSHARE_API_KEY and GLYPHSHARE_PROJECT_ID.")
        return 1
    print(f"  PASSED: project {config.remote.project_id}")

    print("Identity")
    identity = services.identity()
    if looks_like_identity(identity):
        print(f"  PASSED: {identity}")
    else:
        ok = False
        print(f"  FAILED: unexpected identity format {identity!r}")

    print("Shared pool query for 'A'")
    try:
        image = await services.store.query_random_global_artifact("A")
    except PermissionDenied as e:
        print(f"  FAILED: {e}")
        print("  Fix: allow public reads and creates on globalGlyphs in the Firestore rules.")
        return 1
    except TransportUnavailable as e:
        print(f"  FAILED: {e}")
        print("  Fix: check your internet connection and retry.")
        return 1
    except RemoteStoreError as e:
        print(f"  FAILED: {e}")
        return 1
    if image is None:
        print("  PASSED: connected, but no one has saved a glyph for 'A' yet")
    else:
        print(f"  PASSED: found a glyph for 'A' ({len(image)} characters of image data)")
    return 0 if ok else 1


def _cmd_init_config(args: argparse.Namespace) -> int:
    path: Path = args.config_path or default_config_path()
    cfg = AppConfig(remote=RemoteConfig(api_key=args.api_key, project_id=args.project_id))
    if args.database:
        cfg.remote.database = args.database
    if args.data_dir:
        cfg.data_dir = args.data_dir
    if path.exists():
        backup = path.with_suffix(path.suffix + ".bak")
        shutil.copy2(path, backup)
        print(f"Backup created: {backup}")
    cfg.to_json(path)
    print(f"Config written to {path}")
    return 0


async def _run(args: argparse.Namespace, config: AppConfig) -> int:
    services = build_services(config)
    try:
        if args.command == "identity":
            print(services.identity())
            return 0
        if args.command == "save":
            try:
                image = read_image(args.image)
            except (OSError, UnicodeDecodeError) as e:
                print(f"Save failed: cannot read image {args.image}: {e}")
                return 1
            return await _cmd_save(services, args.character, image)
        if args.command == "resolve":
            return await _cmd_resolve(services, args.sentence)
        if args.command == "diagnose":
            return await _cmd_diagnose(services, config)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await services.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(level=logging.DEBUG if args.debug else None)
    if args.command == "init-config":
        return _cmd_init_config(args)
    config = AppConfig.load(args.config_path)
    return asyncio.run(_run(args, config))
