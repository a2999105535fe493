"""Server entrypoint: ``gunicorn tablekeeper.wsgi:app`` or ``flask --app tablekeeper.wsgi run``.

The table monitor runs only here, not in CLI commands or tests.
"""
import atexit

from dotenv import load_dotenv

load_dotenv()

from .app import create_app

app = create_app()

if app.config["MONITOR_ENABLED"]:
    monitor = app.extensions["table_monitor"]
    monitor.start()
    atexit.register(monitor.stop)
