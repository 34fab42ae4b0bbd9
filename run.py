"""
Application entry point
Offline-first journal - local API and sync scheduler

Usage:
    python run.py
    flask --app run sync

Environment:
    - copy values into .env (see journal_sync/config.py for the keys)
"""
import os

from journal_sync import create_app
from journal_sync.components import get_components
from journal_sync.config import get_config

config_class = get_config()

app = create_app(config_class)

if __name__ == '__main__':
    env = os.environ.get('JOURNAL_ENV', 'development')
    if env == 'production':
        for warning in config_class.validate():
            print(f"⚠️  {warning}")

    port = int(os.environ.get('PORT', '8000'))
    components = get_components(app)

    print("=" * 60)
    print("Journal Sync - local API")
    print("=" * 60)
    print(f"📌 API: http://localhost:{port}/api")
    print(f"📌 Environment: {env}")
    print(f"📌 Database: {app.config['SQLALCHEMY_DATABASE_URI']}")
    print(f"📌 Remote API: {app.config['API_BASE_URL']}")
    print(f"📌 CORS origins: {', '.join(config_class.CORS_ORIGINS)}")
    if components.session_store.crypto.is_secure:
        print("🔒 Session token encryption: enabled")
    else:
        print("⚠️  Session token encryption: disabled (set SESSION_ENCRYPTION_KEY)")
    if components.session_store.is_authenticated():
        print(f"👤 Logged in as {components.session_store.username()}")
    else:
        print("⚠️  Not logged in, sync is skipped until `flask --app run login <user>`")
    print("=" * 60)

    # Only the server process sweeps the queue and runs the scheduler;
    # `flask --app run <command>` imports this module without doing either
    components.start_services(start_scheduler=app.config.get('SYNC_SCHEDULER_ENABLED', True))

    try:
        app.run(host='127.0.0.1', port=port, debug=(env == 'development'), use_reloader=False)
    finally:
        components.shutdown()
