#!/usr/bin/env python3
"""
Form Validator Runner

静的 HTML もしくはライブページに対してスキャン・検証適用・解除を実行し、
結果を JSON で標準出力に書き出す。

想定起動:
  python src/form_validator_runner.py --html page.html --action apply \
    [--output annotated.html] [--plan-tier free] [--dry-run]
  python src/form_validator_runner.py --url https://example.com/contact --action scan
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.manager import ConfigManager
from form_validator.analyzer.field_classifier import KeywordFieldClassifier
from form_validator.analyzer.field_patterns import FieldPatterns
from form_validator.analyzer.form_field_resolver import FormFieldResolver
from form_validator.rules.rule_engine import RuleConfig, RuleEngine
from form_validator.security.log_sanitizer import setup_sanitized_logging
from form_validator.service import FormValidationService
from form_validator.services.config_service import (
    LimitsContext,
    PlanLimits,
    StaticConfigService,
    SupabaseConfigService,
)
from form_validator.services.persistence import InMemoryStatePersistence, SupabaseStatePersistence
from form_validator.tree.markup_provider import MarkupDocumentTree
from form_validator.utils.error_handler import DocumentTreeUnavailable

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = setup_sanitized_logging(__name__)


def _build_supabase_client():
    from form_validator.services.supabase_client import build_supabase_client
    return build_supabase_client()


def build_service(provider, config: ConfigManager, plan_tier: str, persistence_kind: str, scope_key: str) -> FormValidationService:
    """設定ファイルからサービス一式を組み立てる"""
    default_limits = PlanLimits.from_dict(config.get_default_limits())
    if persistence_kind == 'supabase':
        supabase = _build_supabase_client()
        tables = config.get_supabase_tables()
        persistence = SupabaseStatePersistence(supabase, tables.get('validation_states_table', 'validation_states'))
        config_service = SupabaseConfigService(supabase, tables.get('plan_limits_table', 'plan_limits'), default_limits)
    else:
        persistence = InMemoryStatePersistence()
        config_service = StaticConfigService(config.get_plan_limits(), default_limits)

    classifier = KeywordFieldClassifier(FieldPatterns(config.get_keyword_overrides()))
    return FormValidationService(
        provider,
        persistence=persistence,
        config_service=config_service,
        classifier=classifier,
        resolver=FormFieldResolver.from_settings(config.get_resolver_settings()),
        rule_engine=RuleEngine(RuleConfig.from_dict(config.get_rule_defaults())),
        plan_tier=plan_tier,
        limits_context=LimitsContext(config.get_limits_cache_ttl(), default_limits),
        scope_key=scope_key,
    )


def _form_summary(form) -> Dict[str, Any]:
    return {
        'form_id': form.node_id,
        'name': form.name,
        'has_existing_validation': form.has_existing_validation,
        'fields': [
            {
                'node_id': f.node_id,
                'label': f.label,
                'field_type': f.field_type.value,
                'error_id': RuleEngine.error_id_for(f),
            }
            for f in form.fields
        ],
    }


async def run_action(service: FormValidationService, action: str, form_id: Optional[str], dry_run: bool) -> Dict[str, Any]:
    scan = await service.scan()
    forms = scan.forms
    if form_id:
        forms = [f for f in forms if f.node_id == form_id]
        if not forms:
            raise SystemExit(f"Form not found: {form_id}")

    summary: Dict[str, Any] = {
        'action': action,
        'forms': [_form_summary(f) for f in forms],
        'discarded_form_ids': scan.discarded_form_ids,
    }
    if action == 'scan':
        return summary

    results: List[Dict[str, Any]] = []
    for form in forms:
        if action == 'apply' and dry_run:
            planned = await service.plan_validation(form)
            results.append({
                'form_id': form.node_id,
                'planned': {node_id: m.to_list() for node_id, m in planned.items()},
            })
        elif action == 'apply':
            result = await service.apply_validation(form)
            results.append({'form_id': form.node_id, **result.to_dict()})
        elif action == 'remove':
            await service.remove_validation(form)
            results.append({'form_id': form.node_id, 'removed': True})
    summary['results'] = results
    return summary


async def _run_markup(args, config: ConfigManager) -> Dict[str, Any]:
    provider = MarkupDocumentTree.from_file(args.html)
    service = build_service(provider, config, args.plan_tier, args.persistence, args.scope_key or str(args.html))
    summary = await run_action(service, args.action, args.form_id, args.dry_run)
    if args.output and args.action != 'scan' and not args.dry_run:
        Path(args.output).write_text(provider.render(), encoding='utf-8')
        logger.info(f"Annotated markup written to {args.output}")
    return summary


async def _run_live(args, config: ConfigManager, headless: Optional[bool]) -> Dict[str, Any]:
    from form_validator.browser.manager import BrowserManager
    from form_validator.browser.page_provider import PlaywrightDocumentTree

    manager = BrowserManager(headless=headless)
    if not await manager.launch():
        raise DocumentTreeUnavailable("Browser could not be launched")
    try:
        page = await manager.open_page(args.url)
        provider = PlaywrightDocumentTree(page)
        service = build_service(provider, config, args.plan_tier, args.persistence, args.scope_key or args.url)
        summary = await run_action(service, args.action, args.form_id, args.dry_run)
        if args.output and args.action != 'scan' and not args.dry_run:
            Path(args.output).write_text(await provider.render(), encoding='utf-8')
            logger.info(f"Annotated markup written to {args.output}")
        return summary
    finally:
        await manager.close()


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(description='Accessible form validation: scan / apply / remove')
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument('--html', type=Path, help='Static HTML file to process')
    source.add_argument('--url', type=str, help='Live page URL (Playwright)')
    p.add_argument('--action', choices=['scan', 'apply', 'remove'], default='scan')
    p.add_argument('--form-id', type=str, default=None, help='Restrict to one form node id')
    p.add_argument('--plan-tier', type=str, default='free')
    p.add_argument('--scope-key', type=str, default=None, help='Persistence scope (default: source path/URL)')
    p.add_argument('--output', type=str, default=None, help='Write annotated markup here')
    p.add_argument('--dry-run', action='store_true', help='Compute mutations without writing them')
    p.add_argument('--headless', choices=['true', 'false', 'auto'], default='auto')
    p.add_argument('--persistence', choices=['memory', 'supabase'], default='memory')
    args = p.parse_args(argv)

    headless_opt = None
    if args.headless == 'true':
        headless_opt = True
    elif args.headless == 'false':
        headless_opt = False

    config = ConfigManager()
    try:
        if args.html is not None:
            summary = asyncio.run(_run_markup(args, config))
        else:
            summary = asyncio.run(_run_live(args, config, headless_opt))
    except DocumentTreeUnavailable as e:
        logger.error(f"Document tree unavailable: {e}")
        return 2

    json.dump(summary, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write('\n')
    return 0


if __name__ == '__main__':
    sys.exit(main())
