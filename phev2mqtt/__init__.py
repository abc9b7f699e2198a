"""Protocol codec, TCP client and car emulator for the Mitsubishi Outlander PHEV."""

__version__ = "0.1.0"