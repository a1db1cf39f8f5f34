"""View and edit the tags of Ogg Opus files, and dump Ogg page information."""

__version__ = "1.10.1"