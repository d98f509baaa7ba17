# Overview: Flask extension instances for the store and the event bus.

from flask_sqlalchemy import SQLAlchemy

from .events import EventBus

db = SQLAlchemy()
event_bus = EventBus()
