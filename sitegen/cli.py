from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sitegen.build import SiteBuilder
from sitegen.config import SiteConfig, SiteConfigError, load_site_config
from sitegen.errors import SiteBuildError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Static site generator for structured content corpora")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_cmd = subparsers.add_parser("build", help="Run one full build pass.")
    build_cmd.add_argument("--config", type=Path, default=Path("site.yaml"), help="Site config YAML path.")
    build_cmd.add_argument("--output", type=Path, default=None, help="Override paths.output.")
    build_cmd.add_argument("--workers", type=int, default=None, help="Override build.workers.")
    build_cmd.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    build_cmd.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    check_cmd = subparsers.add_parser("check-config", help="Validate a site config without building.")
    check_cmd.add_argument("--config", type=Path, default=Path("site.yaml"), help="Site config YAML path.")
    check_cmd.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    check_cmd.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print(payload: dict[str, Any], pretty: bool) -> None:
    if pretty:
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(json.dumps(payload, sort_keys=True))


def _error_payload(exc: Exception) -> dict[str, Any]:
    return {"ok": False, "error_type": exc.__class__.__name__, "error": str(exc)}


def apply_cli_overrides(config: SiteConfig, args: argparse.Namespace) -> SiteConfig:
    if args.output is None and args.workers is None:
        return config

    payload = config.model_dump()
    if args.output is not None:
        payload["paths"]["output"] = args.output.resolve()
    if args.workers is not None:
        payload["build"]["workers"] = args.workers
    try:
        return SiteConfig.model_validate(payload)
    except ValueError as exc:
        raise SiteConfigError(config_path=args.config.as_posix(), details=str(exc)) from exc


def run_build(args: argparse.Namespace) -> int:
    try:
        config = apply_cli_overrides(load_site_config(args.config), args)
        summary = SiteBuilder(config).build()
    except (SiteConfigError, SiteBuildError) as exc:
        _print(_error_payload(exc), args.pretty)
        return 1

    _print({"ok": True, **summary.model_dump(mode="json")}, args.pretty)
    return 0


def run_check_config(args: argparse.Namespace) -> int:
    try:
        config = load_site_config(args.config)
    except SiteConfigError as exc:
        _print(_error_payload(exc), args.pretty)
        return 1

    payload = {
        "ok": True,
        "site": config.site.name,
        "base_url": config.site.base_url,
        "taxonomies": [taxonomy.name for taxonomy in config.taxonomies],
        "data_dir": config.paths.data.as_posix(),
        "output_dir": config.paths.output.as_posix(),
        "workers": config.build.workers,
    }
    _print(payload, args.pretty)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "build":
        return run_build(args)
    if args.command == "check-config":
        return run_check_config(args)
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
