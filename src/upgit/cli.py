#!/usr/bin/env python3
"""upgit CLI - propagate a file from a target repo into a source repo via pull request."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 10):
    print(f"upgit requires Python 3.10+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="upgit",
        description="Open a pull request when a source repo drifts from its target",
    )
    sub = ap.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="Clone, overlay, and open a pull request if needed")
    p_run.add_argument("--config", help="Config file (merged over user and project config)")
    p_run.add_argument("--project-path", help="Project directory for config discovery")
    p_run.add_argument("--tmp-root", help="Directory for working clones (default: system temp dir)")
    p_run.add_argument("--json", dest="as_json", action="store_true", help="Print the outcome as JSON")

    p_config = sub.add_parser("config", help="Configuration management")
    config_sub = p_config.add_subparsers(dest="config_cmd")

    p_config_init = config_sub.add_parser("init", help="Write a template config file")
    p_config_init.add_argument("--project", action="store_true", help="Create project config (.upgit/config.toml)")
    p_config_init.add_argument("--force", action="store_true", help="Overwrite existing config")

    p_config_show = config_sub.add_parser("show", help="Show resolved configuration")
    p_config_show.add_argument("--config", help="Config file (merged over user and project config)")
    p_config_show.add_argument("--project-path", help="Project directory for config discovery")
    p_config_show.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON")
    p_config_show.add_argument("--sources", action="store_true", help="Show config source files")

    return ap


def _template_document():
    import tomlkit

    doc = tomlkit.document()
    doc.add(tomlkit.comment(" upgit configuration"))
    doc.add(tomlkit.comment(" Keep the token out of version control; GITHUB_TOKEN also works."))
    doc.add(tomlkit.nl())

    source = tomlkit.table()
    source.add(tomlkit.comment(" Repository that receives the pull request"))
    source.add("name", "my-service")
    source.add("repo_url", "git@github.com:my-user/my-service.git")
    source.add("file_path", ".eslintrc.json")
    source.add("base_branch", "master")
    doc.add("source", source)

    target = tomlkit.table()
    target.add(tomlkit.comment(" Source of truth the file is copied from"))
    target.add("name", "shared-config")
    target.add("repo_url", "git@github.com:my-user/shared-config.git")
    target.add("file_path", "eslint/.eslintrc.json")
    doc.add("target", target)

    author = tomlkit.table()
    author.add("name", "upgit")
    author.add("email", "upgit@example.com")
    doc.add("author", author)

    github = tomlkit.table()
    github.add("user", "my-user")
    github.add("token", "")
    doc.add("github", github)

    transport = tomlkit.table()
    transport.add("ssh_key", "")
    transport.add("accept_unknown_hosts", True)
    transport.add("https_token", False)
    doc.add("transport", transport)
    return doc


def _cmd_run(args: argparse.Namespace) -> int:
    from .config_loader import load_config
    from .errors import ConfigError, UpdaterError
    from .models import Opened

    try:
        config = load_config(
            Path(args.config) if args.config else None,
            Path(args.project_path) if args.project_path else None,
        )
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    tmp_root = Path(args.tmp_root) if args.tmp_root else None
    updater = config.build_updater(tmp_root=tmp_root)
    try:
        outcome = updater.run()
    except UpdaterError as e:
        if args.as_json:
            print(json.dumps({"status": "error", "identity": updater.id, "step": e.step, "error": str(e)}))
        else:
            print(f"Update failed during {e.step}: {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        updater.gh.close()

    if isinstance(outcome, Opened):
        pr = outcome.pull_request
        if args.as_json:
            print(json.dumps({
                "status": "opened",
                "identity": outcome.identity,
                "commit": outcome.commit_sha,
                "pull_request": pr.number,
                "url": pr.html_url,
            }))
        else:
            print(f"Opened pull request #{pr.number}: {pr.html_url}")
    else:
        if args.as_json:
            print(json.dumps({"status": "up_to_date", "identity": outcome.identity}))
        else:
            print(f"{config.source.name} is up to date")
    return EXIT_OK


def _cmd_config(args: argparse.Namespace) -> int:
    from .config_loader import CONFIG_FILENAME, ensure_config_dir, get_config_paths, load_config
    from .credentials import secure_file_permissions
    from .errors import ConfigError

    if not args.config_cmd:
        print("Usage: upgit config {init|show}")
        return EXIT_OK

    if args.config_cmd == "init":
        import tomlkit

        if args.project:
            config_dir = ensure_config_dir(user=False, project_path=Path.cwd())
            location = "project"
        else:
            config_dir = ensure_config_dir(user=True)
            location = "user"
        target_path = config_dir / CONFIG_FILENAME

        if target_path.exists() and not args.force:
            print(f"Config already exists: {target_path}", file=sys.stderr)
            print("Use --force to overwrite.", file=sys.stderr)
            return EXIT_FAILED

        target_path.write_text(tomlkit.dumps(_template_document()), encoding="utf-8")
        secure_file_permissions(target_path)
        print(f"Created {location} config: {target_path}")
        return EXIT_OK

    if args.config_cmd == "show":
        config_path = Path(args.config) if args.config else None
        project_path = Path(args.project_path) if args.project_path else None

        if args.sources:
            print("Config sources (in priority order):")
            for name, path in get_config_paths(config_path, project_path).items():
                if path and path.exists():
                    print(f"  + {name}: {path}")
                elif path:
                    print(f"  - {name}: {path} (not found)")
                else:
                    print(f"  - {name}: (not applicable)")
            print("Environment variables override all file configs.")
            return EXIT_OK

        try:
            config = load_config(config_path, project_path)
        except ConfigError as e:
            print(f"Config error: {e}", file=sys.stderr)
            return EXIT_CONFIG

        data = config.redacted()
        if args.as_json:
            print(json.dumps(data, indent=2))
        else:
            import tomlkit

            doc = tomlkit.document()
            doc.add(tomlkit.comment(" upgit configuration (resolved)"))
            doc.add(tomlkit.nl())
            for section, values in data.items():
                if isinstance(values, dict):
                    table = tomlkit.table()
                    for key, val in values.items():
                        table.add(key, val)
                    doc.add(section, table)
                else:
                    doc.add(section, values)
            print(tomlkit.dumps(doc))
        return EXIT_OK

    return EXIT_FAILED


def main(argv: list[str] | None = None) -> None:
    ap = _build_parser()
    args = ap.parse_args(argv)

    if not args.cmd:
        ap.print_help()
        sys.exit(EXIT_OK)

    if args.cmd == "run":
        sys.exit(_cmd_run(args))

    if args.cmd == "config":
        sys.exit(_cmd_config(args))


if __name__ == "__main__":
    main()
