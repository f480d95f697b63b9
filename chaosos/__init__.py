"""Operating-system fault injection experiments (packet drop, process, script, systemd, time) run through a command channel."""

__version__ = "0.1.0"