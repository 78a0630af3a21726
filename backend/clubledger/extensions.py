# Overview: Flask extension instances for database, migrations and notification fan-out.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .notifications import NotificationHub

db = SQLAlchemy()
migrate = Migrate()
notifications = NotificationHub()
