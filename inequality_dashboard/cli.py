"""Command line interface for the dashboard."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .config import configure_logging, load_settings
from .loading import DataLoadError, load_sources
from .measures import PANELS
from .reconcile import reconcile
from .session import DashboardSession

logger = logging.getLogger(__name__)


def build_table(settings):
    """Load both sources and reconcile them; raises DataLoadError on failure."""
    income, gdp, features = load_sources(settings)
    return reconcile(income, gdp), features


def cmd_serve(args: argparse.Namespace, settings) -> None:
    from .app import create_app

    table, features = build_table(settings)
    app = create_app(table, features, settings)
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    debug = args.debug or settings.server.debug
    logger.info("Serving dashboard on http://%s:%s", host, port)
    app.run(debug=debug, port=port, host=host)


def cmd_export(args: argparse.Namespace, settings) -> None:
    table, features = build_table(settings)
    session = DashboardSession(
        table,
        features=features,
        query=args.query,
        targets=args.panels or PANELS,
        point_budget=settings.view.point_budget,
        chart_height=settings.view.chart_height,
        debounce_seconds=settings.view.debounce_seconds,
    )
    rendered = session.render()

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    parts = [
        panel.figure.to_html(full_html=False, include_plotlyjs='cdn' if i == 0 else False)
        for i, panel in enumerate(rendered.values())
    ]
    output.write_text(
        '<html><head><meta charset="utf-8"></head><body>\n' + '\n'.join(parts) + '\n</body></html>\n',
        encoding='utf-8',
    )
    logger.info("Wrote %d panel(s) for %s to %s", len(parts), session.query, output)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Top 1% income share and GDP per capita dashboard.')
    parser.add_argument('--config', type=Path, default=None, help='Path to a settings YAML file.')
    parser.add_argument('--log-level', default=None, help='Override the configured log level.')
    sub = parser.add_subparsers(dest='command', required=True)

    serve = sub.add_parser('serve', help='Run the Dash server.')
    serve.add_argument('--host', default=None)
    serve.add_argument('--port', type=int, default=None)
    serve.add_argument('--debug', action='store_true')
    serve.set_defaults(func=cmd_serve)

    export = sub.add_parser('export', help='Render panels for a query string to static HTML.')
    export.add_argument('--query', default='', help="Selection query string, e.g. '?tab=map&mapYear=2000'.")
    export.add_argument('--output', required=True, help='HTML file to write.')
    export.add_argument('--panels', nargs='*', choices=PANELS, default=None)
    export.set_defaults(func=cmd_export)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(args.log_level or settings.log_level)
    try:
        args.func(args, settings)
    except DataLoadError as exc:
        logger.error("Dashboard not started: %s", exc)
        return 1
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
