import logging

from inequality_dashboard.app import create_app
from inequality_dashboard.cli import build_table
from inequality_dashboard.config import configure_logging, load_settings

# CONFIGURATION
settings = load_settings()
configure_logging(settings.log_level)
logger = logging.getLogger('app')

# DATA LOADING AND RECONCILIATION
# Raises DataLoadError when any source is missing or unreadable
table, features = build_table(settings)

# APP
app = create_app(table, features, settings)
server = app.server
logger.info("Dashboard built for %d rows", len(table))

if __name__ == '__main__':
    app.run(debug=settings.server.debug, port=settings.server.port, host=settings.server.host)
