#!/usr/bin/env python3
"""
REST API Summarizer v1.0.1
==========================
Discovers REST endpoints in a codebase or API document and summarizes each
one in a single line using an AI backend.

Features:
  - Multi-language discovery (Python, JS/TS, Go, Ruby, Java, C#)
  - OpenAPI / Swagger documents
  - Endpoint normalization and deduplication
  - Concurrent, rate-limited summarization with retry and backoff
  - Persistent summary cache
  - Table or JSON output, CI-friendly exit codes

Exit codes:
  0  success (individual endpoint failures are reported, not fatal)
  1  fatal error, nothing discovered, or --max-failure-ratio reached
  2  partial: some endpoints were skipped by the run timeout
  130 interrupted

Usage: restapisummarizer sum [OPTIONS] [TARGET]
"""

import sys
import os
import json
import argparse
import asyncio
import tempfile
import shutil
import logging
from collections import OrderedDict
from pathlib import Path
from typing import List, Dict, Optional

# =============================================================================
# VERSION
# =============================================================================
__version__ = "1.0.1"

# =============================================================================
# DEPENDENCY CHECK
# =============================================================================
REQUIRED = {
    "rich": "rich>=13.7.0",
    "git": "gitpython>=3.1.40",
    "dotenv": "python-dotenv>=1.0.0",
    "yaml": "pyyaml>=6.0",
    "tenacity": "tenacity>=8.2.0",
}

def check_deps():
    missing = []
    for mod, pkg in REQUIRED.items():
        try:
            __import__(mod)
        except ImportError:
            missing.append(pkg)
    if missing:
        print(f"\nMissing: pip install {' '.join(missing)}\n")
        sys.exit(1)

check_deps()

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich import box
from dotenv import load_dotenv
import git

from cache import CacheManager
from scanners import HttpMethod, InputKind
from scanners.normalizer import Endpoint
from summarizer import (
    PipelineConfig,
    PipelineResult,
    SummaryStatus,
    LLMProviderFactory,
    MissingApiKey,
    resolve_api_key,
    save_api_key,
    mask_api_key,
    run_pipeline,
)

load_dotenv()
console = Console()

# Rough number of tokens one generated summary costs
TOKENS_PER_SUMMARY = 50

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure structured logging for the summarizer."""
    logger = logging.getLogger("restapisummarizer")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Clear existing handlers
    logger.handlers.clear()

    # Console handler with structured format
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)  # Only warnings and errors to console
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            datefmt='%Y-%m-%dT%H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger

logger = setup_logging()

# =============================================================================
# OUTPUT FORMATTERS
# =============================================================================
METHOD_COLORS = {
    HttpMethod.GET: "green",
    HttpMethod.POST: "blue",
    HttpMethod.PUT: "yellow",
    HttpMethod.DELETE: "red",
    HttpMethod.PATCH: "magenta",
    HttpMethod.UNKNOWN: "dim",
}

def fmt_method(m: HttpMethod) -> str:
    color = METHOD_COLORS.get(m, "white")
    return f"[{color}]{m.value}[/{color}]"

def fmt_location(ep: Endpoint, root: Path) -> str:
    loc = ep.location
    try:
        rel = Path(loc.file_path).resolve().relative_to(root.resolve())
    except ValueError:
        rel = Path(loc.file_path).name
    return f"{rel}:{loc.line}"

def fmt_summary(item) -> str:
    result = item.result
    if result.status == SummaryStatus.OK:
        text = result.summary_text or ""
        return f"{text} [dim](cached)[/dim]" if result.from_cache else text
    label = result.error.value if result.error else result.status.value
    color = "yellow" if result.status == SummaryStatus.SKIPPED else "red"
    return f"[{color}]{result.status.value}: {label}[/{color}]"

def make_table(result: PipelineResult, root: Path, limit: int = 200) -> Table:
    items = result.report.items
    t = Table(title=" REST API Endpoints", box=box.ROUNDED, header_style="bold magenta")
    t.add_column("#", style="dim", width=4)
    t.add_column("Method", width=8)
    t.add_column("Path", style="cyan", max_width=40)
    t.add_column("File", style="dim", max_width=35)
    t.add_column("Summary", max_width=60)

    for i, item in enumerate(items[:limit], 1):
        ep = item.endpoint
        path = ep.path_template[:37] + "..." if len(ep.path_template) > 40 else ep.path_template
        t.add_row(str(i), fmt_method(ep.method), path, fmt_location(ep, root), fmt_summary(item))

    if len(items) > limit:
        t.add_row("...", "", f"... +{len(items) - limit} more", "", "")

    return t

def print_by_file(result: PipelineResult, root: Path):
    groups: Dict[str, List[Endpoint]] = OrderedDict()
    for item in result.report.items:
        file_name = fmt_location(item.endpoint, root).rsplit(":", 1)[0]
        groups.setdefault(file_name, []).append(item.endpoint)

    console.print("\n[bold green] Endpoints by File:[/bold green]")
    for file_name, endpoints in groups.items():
        console.print(f"\n  [bold]{file_name}[/bold] [dim]({len(endpoints)})[/dim]")
        for ep in endpoints:
            console.print(f"    • {fmt_method(ep.method)} {ep.path_template}")

def make_summary(result: PipelineResult) -> Panel:
    c = result.report.counters
    scan = result.scan_stats
    txt = f"""
[bold cyan] Run Summary[/bold cyan]

[bold]Endpoints:[/bold] {c['total']} (from {result.normalizer_stats.get('candidates', 0)} declarations)
[bold]Files Read:[/bold] {scan.get('files_read', 0)} | Skipped: {scan.get('files_skipped', 0)} | Errors: {scan.get('files_errored', 0)}

[bold cyan]Summaries:[/bold cyan]
   [green]Succeeded: {c['succeeded']}[/green]
   [red]Failed: {c['failed']}[/red]
   [yellow]Skipped: {c['skipped']}[/yellow]
"""
    by_language = scan.get("by_language", {})
    if by_language:
        txt += "\n[bold cyan]By Language:[/bold cyan]\n" + "\n".join(
            f"   {lang}: {count}" for lang, count in sorted(by_language.items(), key=lambda x: -x[1])
        )
    txt += f"\n\n[dim]Duration: {result.duration_seconds:.1f}s[/dim]"
    return Panel(txt, title=" Results", border_style="cyan")

def print_footer(result: PipelineResult):
    c = result.report.counters
    if c["total"] and c["cached"]:
        percentage = (c["cached"] * 100) // c["total"]
        console.print(f"[dim]   • {c['cached']}/{c['total']} summaries from cache ({percentage}%)[/dim]")
    new = result.new_summaries
    if new:
        console.print(f"[dim]   • Generated {new} new summaries (~{new * TOKENS_PER_SUMMARY} tokens used)[/dim]")
    if result.report.issues:
        console.print(f"[yellow]   • {len(result.report.issues)} file(s) could not be parsed[/yellow]")

# =============================================================================
# GIT HELPER
# =============================================================================
def clone_repo(url: str) -> str:
    tmp = tempfile.mkdtemp(prefix="restapisummarizer_")
    console.print(f"[cyan]Cloning: {url}[/cyan]")
    git.Repo.clone_from(url, tmp, depth=1)
    console.print(f"[green] Cloned[/green]")
    return tmp

# =============================================================================
# CONFIGURATION
# =============================================================================
def build_config(args) -> PipelineConfig:
    """Defaults < config file < environment < CLI flags."""
    base = PipelineConfig.from_file(args.config) if args.config else None
    config = PipelineConfig.from_env(base)

    if args.no_cache:
        config.use_cache = False
    if args.workers is not None:
        config.concurrency = args.workers
    if args.timeout is not None:
        config.run_timeout = args.timeout or None
    if args.request_timeout is not None:
        config.request_timeout = args.request_timeout or None
    if args.retries is not None:
        config.max_attempts = args.retries + 1
    if args.provider:
        config.llm_provider = args.provider
    if args.model:
        config.model = args.model
    if args.max_failure_ratio is not None:
        config.max_failure_ratio = args.max_failure_ratio
    if args.unknown_methods:
        config.unknown_methods = args.unknown_methods

    config.validate()
    return config

# =============================================================================
# COMMANDS
# =============================================================================
def cmd_sum(args) -> int:
    config = build_config(args)
    target = args.target
    tmp = None

    if not args.quiet and args.format == "table":
        console.print(Panel.fit(
            f"[bold cyan] REST API Summarizer v{__version__}[/bold cyan]\n"
            "[dim]Python | JavaScript/TypeScript | Go | Ruby | Java | C#/.NET | OpenAPI[/dim]\n"
            f"[dim]Provider: {config.llm_provider} | Workers: {config.concurrency} | "
            f"Cache: {'on' if config.use_cache else 'off'}[/dim]",
            border_style="cyan"
        ))

    try:
        # Clone if URL
        if target.startswith(("http://", "https://", "git@")):
            tmp = clone_repo(target)
            target = tmp
        elif not os.path.exists(target):
            console.print(f"[red]Error: {target} not found[/red]")
            return 1

        kind = args.kind or (InputKind.API_DOCUMENT if os.path.isfile(target) else InputKind.SOURCE_TREE)
        show_progress = not args.quiet and args.format == "table"

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                     BarColumn(), TextColumn("{task.completed}/{task.total}"),
                     console=console, disable=not show_progress) as prog:
            scan_task = prog.add_task("[cyan]Scanning", total=None)
            summary_task = None
            files_seen = 0

            def progress_cb(count, fp):
                nonlocal files_seen
                files_seen = count
                prog.update(scan_task, completed=count, description=f"[cyan]{Path(fp).name[:25]}")

            def on_discovered(endpoints):
                nonlocal summary_task
                prog.update(scan_task, total=files_seen,
                            description=f"[cyan]Found {len(endpoints)} endpoints")
                summary_task = prog.add_task("[cyan]Summarizing", total=len(endpoints))

            def on_result(result):
                if summary_task is not None:
                    prog.advance(summary_task)

            result = asyncio.run(run_pipeline(
                target,
                kind=kind,
                config=config,
                progress_cb=progress_cb,
                on_discovered=on_discovered,
                on_result=on_result,
            ))

        report = result.report.to_dict()
        report["target"] = args.target
        report["version"] = __version__

        if args.output:
            with open(args.output, 'w') as f:
                json.dump(report, f, indent=2)
            if not args.quiet and args.format == "table":
                console.print(f"\n[green] Saved: {args.output}[/green]")

        if args.format == "json":
            if not args.output:
                print(json.dumps(report, indent=2))
        elif not args.quiet:
            root = Path(target) if os.path.isdir(target) else Path(target).parent
            if result.report.items:
                console.print(f"\n[green] Found {len(result.report.items)} endpoints[/green]\n")
                console.print(make_table(result, root))
                print_by_file(result, root)
            else:
                console.print("\n[yellow] No REST endpoints found[/yellow]")
            console.print()
            console.print(make_summary(result))
            print_footer(result)

        exit_code = result.exit_code
        if exit_code == 2 and not args.quiet:
            console.print("\n[bold yellow] Partial: run timeout reached, some endpoints were skipped[/bold yellow]")
        return exit_code
    finally:
        if tmp and os.path.exists(tmp):
            shutil.rmtree(tmp, ignore_errors=True)

def cmd_config(args) -> int:
    provider = args.provider or os.getenv("LLM_PROVIDER", "gemini").lower()

    if args.config_action == "set":
        path = save_api_key(args.value, provider)
        console.print(f"[green] API key saved to {path}[/green]")
        return 0

    key = resolve_api_key(provider)
    if not key:
        console.print(f"[yellow]No API key configured for {provider}.[/yellow]")
        console.print("[dim]Run: restapisummarizer config set api-key YOUR_KEY[/dim]")
        return 1
    console.print(f"Current API key: {mask_api_key(key)}")
    return 0

def cmd_cache(args) -> int:
    config = PipelineConfig.from_env()
    with CacheManager(config.cache_dir) as cache:
        if args.cache_action == "clear":
            count = cache.clear_all()
            console.print(f"[green] Cleared {count} cached summaries[/green]")
            return 0

        stats = cache.get_stats()
        t = Table(title=" Summary Cache", box=box.ROUNDED, header_style="bold magenta")
        t.add_column("Property", style="cyan")
        t.add_column("Value")
        t.add_row("Location", stats["db_path"])
        t.add_row("Entries", str(stats["entries"]))
        t.add_row("Size", f"{stats['total_size_bytes'] / 1024:.1f} KB")
        t.add_row("Available", "[green]yes[/green]" if stats["available"] else "[red]no[/red]")
        console.print(t)
    return 0

# =============================================================================
# MAIN CLI
# =============================================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restapisummarizer",
        description=f"REST API Summarizer v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  restapisummarizer sum                           # Summarize the current directory
  restapisummarizer sum ./src --workers 8         # More concurrent backend requests
  restapisummarizer sum openapi.yaml              # API document input
  restapisummarizer sum ./src -o report.json      # JSON report
  restapisummarizer sum https://github.com/org/repo.git --no-cache

  restapisummarizer config set api-key YOUR_GEMINI_KEY
  restapisummarizer config get api-key
  restapisummarizer cache stats
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    # sum
    p_sum = sub.add_parser("sum", help="Discover and summarize REST endpoints",
                           formatter_class=argparse.RawDescriptionHelpFormatter)
    p_sum.add_argument("target", nargs="?", default=".",
                       help="Directory, API document or Git URL (default: .)")
    p_sum.add_argument("--kind", choices=[k.value for k in InputKind],
                       help="Input kind (default: api-document for files, source-tree otherwise)")

    output_group = p_sum.add_argument_group("Output Options")
    output_group.add_argument("-o", "--output", help="Write the JSON report to FILE")
    output_group.add_argument("--format", choices=["table", "json"], default="table",
                              help="Console output format (default: table)")
    output_group.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    output_group.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    ai_group = p_sum.add_argument_group("AI Options")
    ai_group.add_argument("--provider", choices=LLMProviderFactory.list_providers(),
                          help="AI backend (default: gemini, or LLM_PROVIDER)")
    ai_group.add_argument("--model", help="Model name (default: provider default)")
    ai_group.add_argument("--no-cache", action="store_true",
                          help="Disable the summary cache (force fresh summaries)")

    run_group = p_sum.add_argument_group("Run Options")
    run_group.add_argument("--workers", type=int,
                           help="Maximum concurrent backend requests (default: 4)")
    run_group.add_argument("--timeout", type=float, metavar="SECONDS",
                           help="Whole-run timeout; pending requests are skipped (0 disables, default: 300)")
    run_group.add_argument("--request-timeout", type=float, metavar="SECONDS",
                           help="Per-request timeout (0 disables, default: 60)")
    run_group.add_argument("--retries", type=int, metavar="N",
                           help="Retries after a transient backend failure (default: 2)")
    run_group.add_argument("--max-failure-ratio", type=float, metavar="RATIO",
                           help="Exit 1 when failed/total reaches RATIO")
    run_group.add_argument("--unknown-methods", choices=["warn", "drop"],
                           help="Endpoints whose HTTP method is unknown (default: warn)")
    run_group.add_argument("--config", metavar="FILE",
                           help="Configuration file (JSON/YAML)")

    log_group = p_sum.add_argument_group("Logging")
    log_group.add_argument("--log-level", default="INFO",
                           choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                           help="Log level (default: INFO)")
    log_group.add_argument("--log-file", metavar="FILE", help="Write JSON-line logs to FILE")

    # config
    p_config = sub.add_parser("config", help="Manage the AI backend API key")
    config_sub = p_config.add_subparsers(dest="config_action", metavar="ACTION")
    config_sub.required = True
    p_set = config_sub.add_parser("set", help="Store a setting")
    p_set.add_argument("key", choices=["api-key"])
    p_set.add_argument("value", help="The API key")
    p_set.add_argument("--provider", choices=LLMProviderFactory.list_providers())
    p_get = config_sub.add_parser("get", help="Show a setting (masked)")
    p_get.add_argument("key", choices=["api-key"])
    p_get.add_argument("--provider", choices=LLMProviderFactory.list_providers())

    # cache
    p_cache = sub.add_parser("cache", help="Inspect or clear the summary cache")
    p_cache.add_argument("cache_action", choices=["stats", "clear"])

    return parser

def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    verbose = getattr(args, "verbose", False)
    if args.command == "sum":
        setup_logging("DEBUG" if verbose else args.log_level, args.log_file)

    try:
        if args.command == "sum":
            exit_code = cmd_sum(args)
        elif args.command == "config":
            exit_code = cmd_config(args)
        else:
            exit_code = cmd_cache(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except MissingApiKey as e:
        console.print(f"\n[red]Error: {e}[/red]")
        console.print("[dim]Set GEMINI_API_KEY or run: restapisummarizer config set api-key YOUR_KEY[/dim]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    quiet = getattr(args, "quiet", False) or getattr(args, "format", "table") == "json"
    if args.command == "sum" and not quiet and exit_code == 0:
        console.print("\n[bold green] Complete![/bold green]")

    sys.exit(exit_code)

if __name__ == "__main__":
    main()
