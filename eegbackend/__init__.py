"""Backend core for renewable energy communities: models, EBMS messages over MQTT, mail templates."""

__version__ = "0.1.0"