"""
Run one analysis in the foreground, without a Celery worker.

Usage:
    python manage.py analyze_domain example.com
    python manage.py analyze_domain https://example.com --depth 2 --max-urls 20 --include-subdomains
    python manage.py analyze_domain example.com --scan-type quick --json
"""
import json

from django.core.management.base import BaseCommand, CommandError

from domains.models import Domain
from scanner import service
from scanner.config import AnalysisConfig
from scanner.exceptions import AnalysisFailed, AnalysisInProgress, InvalidAnalysisConfig
from scanner.models import Analysis
from scanner.orchestrator import AnalysisOrchestrator


class Command(BaseCommand):
    help = 'Crawl a site and print its privacy analysis'

    def add_arguments(self, parser):
        parser.add_argument('domain', type=str, help='Hostname or URL to analyze')
        parser.add_argument('--scan-type', type=str, default='full', choices=['quick', 'full', 'deep', 'custom'])
        parser.add_argument('--depth', type=int, default=2, help='Link depth to follow from the homepage')
        parser.add_argument('--max-urls', type=int, default=20, help='Upper bound on pages analyzed')
        parser.add_argument('--timeout', type=int, default=None, help='Navigation timeout in ms')
        parser.add_argument('--include-subdomains', action='store_true', help='Probe and follow common subdomains')
        parser.add_argument('--json', action='store_true', help='Print the full result document as JSON')

    def handle(self, *args, **options):
        raw = options['domain'].strip().rstrip('/')
        url = raw if raw.startswith(('http://', 'https://')) else f'https://{raw}'

        payload = {
            'scan_type': options['scan_type'],
            'depth': options['depth'],
            'max_urls': options['max_urls'],
            'include_subdomains': options['include_subdomains'],
        }
        if options['timeout']:
            payload['timeout_ms'] = options['timeout']
        try:
            config = AnalysisConfig.from_payload(payload)
        except InvalidAnalysisConfig as e:
            raise CommandError(str(e))

        domain = Domain.objects.filter(url=url).first() or Domain.objects.create(url=url)
        active = Analysis.objects.active_for_domain(domain.pk)
        if active is not None and not active.is_stale():
            raise CommandError(f'{active.scan_id} is already {active.status} for {domain.hostname}')

        analysis = Analysis.objects.create(
            domain=domain,
            hostname=domain.hostname,
            config=config.to_dict(),
            trigger_type=Analysis.TriggerType.MANUAL,
            step='Queued',
        )
        self.stdout.write(f'Analyzing {domain.hostname} ({analysis.scan_id})...')

        try:
            final = AnalysisOrchestrator(analysis).run()
        except AnalysisInProgress as e:
            raise CommandError(str(e))
        except AnalysisFailed as e:
            raise CommandError(f'Analysis failed: {e}')

        analysis.refresh_from_db()
        if final != Analysis.Status.COMPLETED:
            self.stdout.write(self.style.WARNING(f'Analysis ended as {final}'))
            return

        results = service.get_results(analysis.pk)
        if options['json']:
            self.stdout.write(json.dumps(results, indent=2, default=str))
            return

        summary = results['summary']
        risk = summary['risk_assessment'] or {}
        self.stdout.write(self.style.SUCCESS(
            f"Done: {summary['total_cookies']} cookies on {analysis.urls_analyzed} pages"
        ))
        for category, count in sorted(summary['cookies_by_category'].items()):
            self.stdout.write(f'  {category}: {count}')
        self.stdout.write(
            f"Risk: privacy={risk.get('privacy_risk')} compliance={risk.get('compliance_risk')} "
            f"security={risk.get('security_risk')}"
        )
        for rec in results['recommendations']:
            self.stdout.write(f"  [{rec.get('severity')}] {rec.get('title')}")
