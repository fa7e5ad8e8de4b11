"""Single application entry point that runs the playback engine and web interface."""

import logging
import sys
from decimal import Decimal

from .config import config
from .models import init_db, get_session, Viewer, Video
from .runtime import PlaybackRuntime
from .sql_backend import SqlBackend
from .web import app, socketio, set_runtime, broadcast_status

logger = logging.getLogger(__name__)

def setup_logging():
    """Setup logging configuration."""
    config.ensure_directories()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.LOG_FILE),
            logging.StreamHandler(sys.stdout)
        ]
    )

def setup_default_data():
    """Seed a small demo catalog if the database is empty."""
    with get_session() as session:
        if session.query(Video).count() > 0:
            return

        session.add_all([
            Viewer(id="admin", username="Admin", role="ADMIN",
                   balance=Decimal("0"), auto_purchase_limit=Decimal("0")),
            Viewer(id="creator", username="Creator", role="USER",
                   balance=Decimal("0"), auto_purchase_limit=Decimal("0")),
            Viewer(id="demo", username="Demo Viewer", role="USER",
                   balance=Decimal("10.00"), auto_purchase_limit=Decimal("5.00")),
        ])
        session.flush()
        session.add_all([
            Video(id="ep1", title="Pilot Ep 1", category="SERIES", price=Decimal("0"),
                  duration=1500, creator_id="admin"),
            Video(id="ep2", title="Pilot Ep 2", category="SERIES", price=Decimal("3.00"),
                  duration=1500, creator_id="admin"),
            Video(id="ep10", title="Pilot Ep 10", category="SERIES", price=Decimal("8.00"),
                  duration=1500, creator_id="admin"),
            Video(id="doc1", title="Harbor Lights", category="DOCUMENTARY", price=Decimal("2.50"),
                  duration=3600, creator_id="creator"),
        ])
        logger.info("Added demo catalog")

class NextUpApp:
    """Main application that runs the playback runtime and web server."""

    def __init__(self):
        self.runtime = None

    def setup(self):
        """Setup the application."""
        setup_logging()
        logger.info("Starting next-up")

        # Initialize database
        init_db()
        setup_default_data()

        self.runtime = PlaybackRuntime(SqlBackend(), on_status=broadcast_status)

        # Share runtime with web interface
        set_runtime(self.runtime)

    def run(self):
        """Run the complete application."""
        try:
            self.setup()
            self.runtime.start()

            logger.info(f"Starting web server on {config.FLASK_HOST}:{config.FLASK_PORT}")
            socketio.run(
                app,
                host=config.FLASK_HOST,
                port=config.FLASK_PORT,
                debug=config.DEBUG,
                use_reloader=False,  # the runtime thread must not be started twice
                allow_unsafe_werkzeug=True
            )

        except KeyboardInterrupt:
            logger.info("next-up stopped by user")
        except Exception as e:
            logger.error(f"next-up application error: {e}")
            sys.exit(1)
        finally:
            self.cleanup()

    def cleanup(self):
        """Cleanup when shutting down."""
        logger.info("Cleaning up next-up")
        if self.runtime:
            self.runtime.stop()

def main():
    """Main entry point."""
    NextUpApp().run()

if __name__ == "__main__":
    main()
