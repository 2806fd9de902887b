try:
    from backend.quemsoueu.server import create_app
except ImportError:  # pragma: no cover
    from quemsoueu.server import create_app

app, socketio = create_app()
