import argparse
import json
import logging
import signal
import sys
import time
from typing import Any, Dict, List, Optional

from playmix.application.engine import MixEngine
from playmix.application.presets import list_presets
from playmix.crosscutting.config import MixSettings, SettingsError, SettingsManager
from playmix.crosscutting.logging import setup_logging
from playmix.crosscutting.metrics import MetricsCollector
from playmix.crosscutting.reporting import create_report
from playmix.domain.entities import WeightMode
from playmix.domain.errors import ConfigError
from playmix.interfaces.payloads import (
    JsonPoolCatalog,
    content_warning_to_json,
    imbalance_warning_to_json,
    load_request_file,
    parse_request,
    preset_to_json,
    preview_to_json,
    projection_to_json,
    result_to_json,
)


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


class CLI:
    """Command Line Interface for PlayMix."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._setup_signal_handlers()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='playmix',
            description='Blend several playlists into one weighted, shaped sequence'
        )
        parser.add_argument(
            '--config-dir',
            default=None,
            help='Directory holding the .env file (default: current directory)'
        )
        parser.add_argument(
            '--pool-dir',
            default=None,
            help='Directory of <pool_id>.json files used when the request lists poolIds'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default=None,
            help='Override the configured logging level'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        mix_parser = subparsers.add_parser('mix', help='Generate a mix from a JSON request file')
        mix_parser.add_argument('request', help='Path to the JSON request file')
        mix_parser.add_argument(
            '--seed',
            type=int,
            default=None,
            help='Random seed (overrides the seed in the request file)'
        )
        mix_parser.add_argument(
            '--preset',
            default=None,
            help='Apply a preset instead of the ratios/options in the request file'
        )
        mix_parser.add_argument(
            '--output',
            default=None,
            help='Write the mix JSON here instead of stdout'
        )
        mix_parser.add_argument(
            '--report-path',
            default=None,
            help='Directory for the mix report (default from PLAYMIX_REPORT_DIR)'
        )
        mix_parser.add_argument(
            '--no-report',
            action='store_true',
            help='Do not write a report file'
        )
        mix_parser.add_argument(
            '--metrics',
            action='store_true',
            help='Print a metrics summary after mixing'
        )

        check_parser = subparsers.add_parser('check', help='Run the pre-flight advisories only')
        check_parser.add_argument('request', help='Path to the JSON request file')
        check_parser.add_argument(
            '--preset',
            default=None,
            help='Apply a preset instead of the ratios/options in the request file'
        )
        check_parser.add_argument(
            '--basis',
            choices=[mode.value for mode in WeightMode],
            default=WeightMode.COUNT.value,
            help='Ratio preview basis: per 100 items or per 60 minutes'
        )

        subparsers.add_parser('presets', help='List available presets')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down")
            self._cleanup_resources()
            sys.exit(EXIT_INTERRUPTED)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")

    def _load_settings(self, args: argparse.Namespace) -> MixSettings:
        settings = SettingsManager(args.config_dir).get_mix_settings()
        level = args.log_level or settings.log_level
        setup_logging(level, structured=settings.structured_logs)
        return settings

    def _load_request(self, args: argparse.Namespace):
        data = load_request_file(args.request)
        catalog = JsonPoolCatalog(args.pool_dir) if args.pool_dir else None
        if args.preset:
            data = dict(data)
            data['preset'] = args.preset
            data.pop('ratios', None)
        return parse_request(data, catalog)

    def _emit(self, payload: Dict[str, Any], output: Optional[str] = None) -> None:
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        if output:
            with open(output, 'w') as f:
                f.write(text + '\n')
        else:
            print(text)

    def _mix(self, args: argparse.Namespace, settings: MixSettings) -> int:
        logger = logging.getLogger(__name__)
        pools, ratio_config, options, seed = self._load_request(args)
        if args.seed is not None:
            seed = args.seed

        engine = MixEngine(settings)
        mix_id = f"mix_{time.strftime('%Y%m%d_%H%M%S')}"
        metrics = MetricsCollector(mix_id, options.shape_strategy.value)
        result = engine.mix(pools, ratio_config, options, seed=seed, metrics=metrics, mix_id=mix_id)

        self._emit(result_to_json(result), args.output)
        if result.incomplete:
            logger.warning(f"Mix stopped early: {result.state.value} "
                           f"(limiting source: {result.limiting_source_id})")

        if not args.no_report:
            report = create_report(mix_id, result, pools, options.shape_strategy.value, metrics.to_dict())
            report_file = report.save(args.report_path or settings.report_dir)
            logger.info(f"Report saved to: {report_file}")

        if args.metrics:
            metrics.print_summary()
        return EXIT_OK

    def _check(self, args: argparse.Namespace, settings: MixSettings) -> int:
        pools, ratio_config, options, _ = self._load_request(args)
        engine = MixEngine(settings)
        self._emit({
            'contentWarning': content_warning_to_json(
                engine.check_sufficient_content(pools, options, ratio_config)),
            'ratioImbalance': imbalance_warning_to_json(
                engine.check_ratio_imbalance(pools, ratio_config, options)),
            'exhaustion': projection_to_json(
                engine.project_exhaustion(pools, ratio_config, options)),
            'ratios': [preview_to_json(p) for p in
                       engine.describe_ratios(pools, ratio_config, WeightMode(args.basis))],
        })
        return EXIT_OK

    def _presets(self) -> int:
        self._emit({'presets': [preset_to_json(p) for p in list_presets()]})
        return EXIT_OK

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            return EXIT_FAILURE

        try:
            settings = self._load_settings(args)
            if args.command == 'mix':
                return self._mix(args, settings)
            if args.command == 'check':
                return self._check(args, settings)
            if args.command == 'presets':
                return self._presets()
            self.parser.print_help()
            return EXIT_FAILURE
        except (ConfigError, SettingsError) as e:
            logger.error(f"Configuration error: {e}")
            print(f"error: {e}", file=sys.stderr)
            return EXIT_CONFIG_ERROR
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return EXIT_INTERRUPTED
        except (OSError, ValueError) as e:
            logger.error(f"CLI error: {e}")
            print(f"error: {e}", file=sys.stderr)
            return EXIT_FAILURE
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
