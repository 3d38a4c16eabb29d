import os

from dotenv import load_dotenv

load_dotenv()

from portal import create_app  # noqa: E402

config = os.getenv("APP_ENV", "production")

app = create_app(config)

# celery -A wsgi.celery worker / beat
celery = app.extensions["celery"]
