"""Debug launch and attach orchestration for Cordova and Ionic apps."""

__version__ = "0.1.0"
