"""beoutil: discover and watch B&O products speaking the BeoRemote API."""

__version__ = "0.3.0"
