"""scholex CLI: learn, inspect and apply per-source extraction rules.

Usage examples:
- Learn free-text rules for a source from a downloaded feed, then extract.
- Register an AI-proposed selector config against a saved page.
- Swap databases by providing --db-url (Postgres) or default to SQLite path.

Design principles:
- The engine never fetches; every command reads local files.
- Rule sets live in the database; commands are safe to rerun.
- Observability: JSON event lines on demand (--log-json), logs with --verbose.
"""
import argparse
import json
import logging
import os
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Optional

from rich.console import Console
from rich.table import Table

from .config import DEFAULT_DB_PATH, EngineSettings, load_config, settings_from_config
from .errors import ConfigurationError


console = Console()


# Structured logging helper
def _log_json(enabled: bool, event: str, **kwargs: Any) -> None:
	if not enabled:
		return
	payload = {"scholex_event": event}
	payload.update(kwargs)
	print(json.dumps(payload, ensure_ascii=False, default=str))


def _configure_logging(verbose: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


def _settings(args: argparse.Namespace) -> EngineSettings:
	settings = EngineSettings()
	if getattr(args, "config", None):
		settings = settings_from_config(load_config(Path(args.config)), settings)
	if getattr(args, "db_url", None):
		settings = replace(settings, db_url=args.db_url)
	if getattr(args, "db", None):
		settings = replace(settings, db_path=Path(args.db))
	return settings


def _orchestrator(args: argparse.Namespace):
	from .orchestrator import ExtractionOrchestrator
	from .store import SqlRuleStore
	settings = _settings(args)
	return ExtractionOrchestrator(SqlRuleStore.from_settings(settings), settings)


def _read_text(path: str) -> str:
	return Path(path).read_text(encoding="utf-8")


def _print_json(data: Any) -> None:
	console.print_json(json.dumps(data, ensure_ascii=False, default=str))


def _load_samples(args: argparse.Namespace) -> List[str]:
	samples: List[str] = []
	if args.samples_json:
		data = json.loads(_read_text(args.samples_json))
		if not isinstance(data, list):
			raise ConfigurationError("--samples-json must contain a JSON list of strings")
		samples.extend(str(s) for s in data if s)
	if args.feed:
		from .discovery.rss import parse_feed
		for entry in parse_feed(Path(args.feed).read_bytes()):
			text = entry.get("summary") or entry.get("description")
			if text:
				samples.append(text)
	return samples[: args.limit] if args.limit else samples


def cmd_config_validate(args: argparse.Namespace) -> int:
	config_path = Path(args.path)
	try:
		data = load_config(config_path)
		settings = settings_from_config(data)
		table = Table(title="scholex Config Summary")
		table.add_column("Field")
		table.add_column("Value")
		table.add_row("config_path", str(config_path))
		table.add_row("save_threshold", str(settings.save_threshold))
		table.add_row("apply_threshold", str(settings.apply_threshold))
		table.add_row("max_labels", str(settings.max_labels))
		table.add_row("html_author_delimiters", settings.html_author_delimiters)
		table.add_row("min_generic_date_year", str(settings.min_generic_date_year))
		table.add_row("database", settings.db_url or str(settings.db_path))
		console.print(table)
		console.print("[green]Config validation passed.[/green]")
		return 0
	except (FileNotFoundError, ConfigurationError, TypeError) as e:
		console.print(f"[red]Config validation failed:[/red] {e}")
		return 1


def cmd_db_init(args: argparse.Namespace) -> int:
	from .store import init_db, init_db_from_url
	settings = _settings(args)
	if settings.db_url:
		init_db_from_url(settings.db_url)
		console.print("[green]Initialized DB from URL[/green]")
	else:
		init_db(settings.db_path)
		console.print(f"[green]Initialized DB:[/green] {settings.db_path}")
	return 0


def cmd_learn(args: argparse.Namespace) -> int:
	start_ts = time.time()
	samples = _load_samples(args)
	orchestrator = _orchestrator(args)
	outcome = orchestrator.learn(args.source, samples, force=args.force)
	_log_json(args.log_json, "learn_done", source=args.source, samples=len(samples), persisted=outcome.persisted,
		confidence=outcome.rule_set.confidence, elapsed_sec=round(time.time() - start_ts, 3))
	table = Table(title=f"Learning result: {args.source}")
	table.add_column("Field")
	table.add_column("Value")
	table.add_row("samples", str(len(samples)))
	table.add_row("state", outcome.state.value)
	table.add_row("detected_format", str(outcome.rule_set.format_id))
	table.add_row("confidence", str(outcome.rule_set.confidence))
	table.add_row("fields", ", ".join(sorted(outcome.rule_set.rules)))
	table.add_row("message", outcome.message)
	console.print(table)
	return 0 if outcome.persisted else 2


def cmd_extract(args: argparse.Namespace) -> int:
	texts = [args.text] if args.text else []
	if args.file:
		texts.append(_read_text(args.file))
	if not texts:
		console.print("[red]Provide --text or --file[/red]")
		return 1
	from .quality import assess_record
	orchestrator = _orchestrator(args)
	records = orchestrator.batch_extract(args.source, texts)
	out = []
	for record in records:
		item = record.as_dict()
		if args.quality:
			item["_quality"] = assess_record(record)
		out.append(item)
	_log_json(args.log_json, "extract_done", source=args.source, items=len(out))
	_print_json(out if len(out) > 1 else out[0])
	return 0


def cmd_rules_show(args: argparse.Namespace) -> int:
	from .rules import rule_set_to_dict
	orchestrator = _orchestrator(args)
	if args.source:
		rule_set = orchestrator.load_rules(args.source)
		if rule_set is None:
			console.print(f"[yellow]No usable rule set stored for {args.source}[/yellow]")
			return 1
		_print_json(rule_set_to_dict(rule_set))
		return 0
	table = Table(title="Stored rule sets")
	table.add_column("source")
	table.add_column("format")
	table.add_column("confidence")
	table.add_column("enabled")
	table.add_column("origin")
	for source_id in orchestrator.store.source_ids():
		rule_set = orchestrator.load_rules(source_id)
		if rule_set is None:
			table.add_row(source_id, "[red]malformed[/red]", "", "", "")
			continue
		table.add_row(source_id, str(rule_set.format_id), str(rule_set.confidence), str(rule_set.enabled), rule_set.source.value)
	console.print(table)
	return 0


def cmd_rules_toggle(args: argparse.Namespace) -> int:
	orchestrator = _orchestrator(args)
	if not orchestrator.set_enabled(args.source, args.enable):
		console.print(f"[yellow]No rule set stored for {args.source}[/yellow]")
		return 1
	console.print(f"[green]{'Enabled' if args.enable else 'Disabled'} rules for {args.source}[/green]")
	return 0


def cmd_rules_clear(args: argparse.Namespace) -> int:
	orchestrator = _orchestrator(args)
	if orchestrator.clear_rules(args.source):
		console.print(f"[green]Cleared rules for {args.source}[/green]")
	else:
		console.print(f"[yellow]Nothing stored for {args.source}[/yellow]")
	return 0


def cmd_html_extract(args: argparse.Namespace) -> int:
	from .oracle import parse_page_analysis
	html = Path(args.html).read_bytes()
	if args.analysis_input:
		from .extractors.html_list import clean_html_for_analysis
		print(clean_html_for_analysis(html))
		return 0
	orchestrator = _orchestrator(args)
	if args.analysis:
		try:
			analysis = parse_page_analysis(_read_text(args.analysis), args.page_url or "")
		except ConfigurationError as e:
			console.print(f"[red]Rejected page analysis:[/red] {e}")
			return 1
		if not analysis.is_article_list_page:
			console.print(f"[yellow]Not an article list page ({analysis.page_type}).[/yellow]")
			if analysis.article_list_url:
				console.print(f"Article list page: {analysis.article_list_url}")
			return 2
		outcome = orchestrator.register_selector_config(args.source, analysis.selectors, html)
		_log_json(args.log_json, "selector_config_registered", source=args.source,
			persisted=outcome.persisted, confidence=outcome.rule_set.confidence)
		if not outcome.persisted:
			console.print(f"[red]Selector config not saved:[/red] {outcome.message}")
			return 1
	result = orchestrator.extract_html(args.source, html, base_url=args.page_url)
	if result is None:
		console.print(f"[yellow]No usable selector config for {args.source}[/yellow]")
		return 1
	_log_json(args.log_json, "html_extract_done", source=args.source, status=result.status,
		containers=result.containers_found, skipped=result.skipped, papers=len(result.records))
	if not result.ok:
		console.print(f"[red]{result.message}[/red]")
		return 1
	_print_json([r.as_dict() for r in result.records])
	return 0


def cmd_feed_extract(args: argparse.Namespace) -> int:
	from .oracle import parse_feed_field_map
	xml = Path(args.xml).read_bytes()
	orchestrator = _orchestrator(args)
	if args.sample_items:
		from .extractors.xml_rules import sample_feed_items
		print(sample_feed_items(xml, count=args.sample_items))
		return 0
	if args.field_map:
		try:
			feed_config, rules = parse_feed_field_map(_read_text(args.field_map))
		except ConfigurationError as e:
			console.print(f"[red]Rejected field map:[/red] {e}")
			return 1
		outcome = orchestrator.register_feed_config(args.source, feed_config, rules, xml)
		_log_json(args.log_json, "feed_config_registered", source=args.source,
			persisted=outcome.persisted, confidence=outcome.rule_set.confidence)
		if not outcome.persisted:
			console.print(f"[yellow]Field map not saved:[/yellow] {outcome.message}")
	records = orchestrator.extract_feed(args.source, xml)
	_log_json(args.log_json, "feed_extract_done", source=args.source, papers=len(records))
	_print_json([r.as_dict() for r in records])
	return 0


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="scholex", description="Adaptive academic-metadata extraction")
	parser.add_argument("--config", default=None, help="Path to scholex.yaml")
	parser.add_argument("--db", default=None, help=f"Path to SQLite DB file (default {DEFAULT_DB_PATH})")
	parser.add_argument("--db-url", default=os.getenv("SCHOLEX_DB_URL"), help="SQLAlchemy DB URL (postgresql+psycopg2://...)")
	parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
	sub = parser.add_subparsers(dest="command")

	# config-validate
	p_validate = sub.add_parser("config-validate", help="Validate and summarize a scholex.yaml")
	p_validate.add_argument("path", nargs="?", default=str(Path("config") / "scholex.yaml"))
	p_validate.set_defaults(func=cmd_config_validate)

	# db-init
	p_db = sub.add_parser("db-init", help="Create the rule-set table")
	p_db.set_defaults(func=cmd_db_init)

	# learn
	p_learn = sub.add_parser("learn", help="Learn free-text rules for a source from sample summaries")
	p_learn.add_argument("source")
	p_learn.add_argument("--samples-json", default=None, help="JSON list of sample summary strings")
	p_learn.add_argument("--feed", default=None, help="Downloaded RSS/Atom file to take descriptions from")
	p_learn.add_argument("--limit", type=int, default=5)
	p_learn.add_argument("--force", action="store_true", help="Re-learn even if a confident rule set exists")
	p_learn.add_argument("--log-json", action="store_true")
	p_learn.set_defaults(func=cmd_learn)

	# extract
	p_extract = sub.add_parser("extract", help="Extract metadata from one summary/description")
	p_extract.add_argument("source")
	p_extract.add_argument("--text", default=None)
	p_extract.add_argument("--file", default=None)
	p_extract.add_argument("--quality", action="store_true", help="Include completeness diagnostics")
	p_extract.add_argument("--log-json", action="store_true")
	p_extract.set_defaults(func=cmd_extract)

	# rules-show
	p_show = sub.add_parser("rules-show", help="List stored rule sets or show one")
	p_show.add_argument("source", nargs="?")
	p_show.set_defaults(func=cmd_rules_show)

	# rules-toggle
	p_toggle = sub.add_parser("rules-toggle", help="Enable or disable a stored rule set")
	p_toggle.add_argument("source")
	group = p_toggle.add_mutually_exclusive_group(required=True)
	group.add_argument("--enable", dest="enable", action="store_true")
	group.add_argument("--disable", dest="enable", action="store_false")
	p_toggle.set_defaults(func=cmd_rules_toggle)

	# rules-clear
	p_clear = sub.add_parser("rules-clear", help="Delete the stored rule set of a source")
	p_clear.add_argument("source")
	p_clear.set_defaults(func=cmd_rules_clear)

	# html-extract
	p_html = sub.add_parser("html-extract", help="Extract papers from a saved list page")
	p_html.add_argument("source")
	p_html.add_argument("--html", required=True, help="Saved HTML page")
	p_html.add_argument("--analysis", default=None, help="Page analysis JSON to validate and store first")
	p_html.add_argument("--page-url", default=None, help="URL the page was fetched from (for relative links)")
	p_html.add_argument("--analysis-input", action="store_true", help="Only print the cleaned page for analysis")
	p_html.add_argument("--log-json", action="store_true")
	p_html.set_defaults(func=cmd_html_extract)

	# feed-extract
	p_feed = sub.add_parser("feed-extract", help="Extract papers from a saved XML feed")
	p_feed.add_argument("source")
	p_feed.add_argument("--xml", required=True, help="Saved RSS/Atom/RDF document")
	p_feed.add_argument("--field-map", default=None, help="Feed field map JSON to validate and store first")
	p_feed.add_argument("--sample-items", type=int, default=0, help="Only print the first N items for analysis")
	p_feed.add_argument("--log-json", action="store_true")
	p_feed.set_defaults(func=cmd_feed_extract)

	return parser


def main(argv: Optional[List[str]] = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)
	if not hasattr(args, "func"):
		parser.print_help()
		return 0
	_configure_logging(args.verbose)
	return int(args.func(args))


if __name__ == "__main__":
	sys.exit(main())
