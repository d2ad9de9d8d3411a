"""Agent behaviour core: state machine, decisions and collaboration consensus."""

__version__ = "0.1.0"
